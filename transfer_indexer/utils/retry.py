"""
Backoff policy shared by every retryable call site.

Wraps an async operation with exponential backoff and a retry ceiling.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from transfer_indexer.config.constants import (
    RETRY_INITIAL_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_MULTIPLIER,
)
from transfer_indexer.utils.exceptions import TRANSIENT_ERRORS, RetryExhausted

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a retry ceiling.

    Attributes:
        initial_delay: Delay before the second attempt (seconds)
        multiplier: Factor applied to the delay after each failure
        max_delay: Upper bound for a single delay (seconds)
        max_attempts: Total attempts including the first one
    """

    initial_delay: float = RETRY_INITIAL_DELAY
    multiplier: float = RETRY_MULTIPLIER
    max_delay: float = RETRY_MAX_DELAY
    max_attempts: int = RETRY_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    @classmethod
    def from_settings(cls, settings, max_attempts: int | None = None) -> "BackoffPolicy":
        """Build policy from application settings."""
        return cls(
            initial_delay=settings.retry_initial_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
            max_attempts=max_attempts or settings.retry_max_attempts,
        )

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            Delay in seconds, capped at max_delay
        """
        delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def delays(self) -> Iterator[float]:
        """Yield the delays between consecutive attempts."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_for(attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
        operation_name: str = "operation",
    ) -> T:
        """
        Execute an async operation with retries.

        Args:
            operation: Factory returning a fresh awaitable per attempt
            retry_on: Exception types considered transient
            operation_name: Operation name for logging

        Returns:
            Result of the first successful attempt

        Raises:
            RetryExhausted: If every attempt failed with a transient error
            Exception: Any non-transient error, immediately
        """
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await operation()
            except retry_on as e:
                last_error = e
                if attempt == self.max_attempts:
                    logger.error(
                        f"{operation_name} failed after {attempt} attempts: {e}"
                    )
                    break

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{operation_name} failed on attempt "
                    f"{attempt}/{self.max_attempts}: {e}. Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"{operation_name} succeeded on attempt {attempt}")
            return result

        raise RetryExhausted(operation_name, self.max_attempts, last_error)

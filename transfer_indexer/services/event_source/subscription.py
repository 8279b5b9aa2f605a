"""
Polling subscription.

A producer task polls the source for blocks past the last delivered one and
puts non-empty event batches on a bounded queue. A producer failure is
handed to the consumer as SubscriptionBroken.
"""

import asyncio
import contextlib
from typing import TYPE_CHECKING

from loguru import logger

from transfer_indexer.utils.exceptions import SubscriptionBroken
from transfer_indexer.utils.validation import mask_address

from .constants import SUBSCRIPTION_QUEUE_SIZE
from .types import RawEvent

if TYPE_CHECKING:
    from .types import EventSource


class Subscription:
    """Channel of Transfer event batches for one token."""

    def __init__(
        self,
        source: "EventSource",
        token_address: str,
        from_block: int,
        poll_interval: float,
        max_range: int,
        queue_size: int = SUBSCRIPTION_QUEUE_SIZE,
    ) -> None:
        """
        Initialize subscription.

        Args:
            source: Event source used for polling
            token_address: Token contract
            from_block: First block to deliver (inclusive)
            poll_interval: Seconds to wait once caught up with the frontier
            max_range: Maximum blocks fetched per poll
            queue_size: Batches buffered before the producer blocks
        """
        self.source = source
        self.token_address = token_address
        self.next_block = from_block
        self.poll_interval = poll_interval
        self.max_range = max_range
        self._queue: asyncio.Queue[list[RawEvent] | BaseException] = asyncio.Queue(
            maxsize=queue_size
        )
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Start the producer task."""
        if self._task is None:
            self._task = asyncio.create_task(
                self._produce(),
                name=f"subscription-{self.token_address}",
            )

    async def _produce(self) -> None:
        """Poll the source and enqueue batches until cancelled or failed."""
        try:
            while True:
                frontier = await self.source.current_frontier()
                if frontier < self.next_block:
                    await asyncio.sleep(self.poll_interval)
                    continue

                to_block = min(frontier, self.next_block + self.max_range - 1)
                events = await self.source.fetch_range(
                    self.token_address, self.next_block, to_block
                )
                if events:
                    await self._queue.put(events)
                self.next_block = to_block + 1

                if to_block >= frontier:
                    await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"[Source] Subscription {mask_address(self.token_address)} "
                f"stopped at block {self.next_block}: {e}"
            )
            await self._queue.put(e)

    async def get(self) -> list[RawEvent]:
        """
        Wait for the next batch.

        Raises:
            SubscriptionBroken: If the producer failed
        """
        item = await self._queue.get()
        if isinstance(item, BaseException):
            raise SubscriptionBroken(
                f"subscription for {self.token_address} broken: {item}"
            ) from item
        return item

    async def close(self) -> None:
        """Cancel the producer and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

"""
Web3 event source.

Read-only gateway to the chain: bounded Transfer log queries, block
timestamps, the finality frontier, and polling subscriptions.
Synchronous Web3 calls run in a thread pool with timeouts.
"""

import asyncio
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any, TypeVar

from loguru import logger
from web3 import Web3
from web3.exceptions import MismatchedABI
from web3.middleware import ExtraDataToPOAMiddleware

from transfer_indexer.config.constants import (
    BLOCK_TIME_CACHE_SIZE,
    BLOCKCHAIN_TIMEOUT,
    RPC_EXECUTOR_WORKERS,
    RPC_MAX_CONCURRENT,
)
from transfer_indexer.config.settings import Settings
from transfer_indexer.utils.exceptions import InvalidRange, SourceUnavailable
from transfer_indexer.utils.validation import mask_address

from .constants import ERC20_ABI, ERC20_TRANSFER_TOPIC_COUNT, TRANSFER_TOPIC
from .subscription import Subscription
from .types import RawEvent

T = TypeVar("T")


class Web3EventSource:
    """
    Event source backed by a JSON-RPC node.

    Handles:
    - Thread pool execution of sync Web3 calls
    - RPC concurrency limiting and timeouts
    - Block timestamp caching
    """

    def __init__(
        self,
        w3: Web3,
        confirmations: int = 0,
        timeout: float = BLOCKCHAIN_TIMEOUT,
        max_concurrency: int = RPC_MAX_CONCURRENT,
        max_workers: int = RPC_EXECUTOR_WORKERS,
    ) -> None:
        """
        Initialize event source.

        Args:
            w3: Web3 instance
            confirmations: Blocks behind head treated as not yet final
            timeout: Per-call timeout in seconds
            max_concurrency: Maximum in-flight RPC calls
            max_workers: Thread pool size
        """
        self.w3 = w3
        self.confirmations = confirmations
        self.timeout = timeout
        self._limiter = asyncio.Semaphore(max_concurrency)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="web3",
        )
        self._contracts: dict[str, Any] = {}
        self._block_times: OrderedDict[int, datetime] = OrderedDict()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3EventSource":
        """Create source with an HTTP provider from settings."""
        w3 = Web3(
            Web3.HTTPProvider(
                settings.rpc_url,
                request_kwargs={"timeout": settings.rpc_timeout},
            )
        )
        if settings.poa_chain:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        return cls(
            w3,
            confirmations=settings.confirmations,
            timeout=settings.rpc_timeout,
            max_concurrency=settings.rpc_max_concurrency,
            # Headroom for threads still finishing calls that timed out
            max_workers=settings.rpc_max_concurrency + RPC_EXECUTOR_WORKERS,
        )

    async def _call(self, func: Callable[[], T], operation_name: str) -> T:
        """
        Run a synchronous Web3 call in the thread pool.

        Raises:
            SourceUnavailable: On timeout or any transport/RPC error
        """
        loop = asyncio.get_running_loop()
        async with self._limiter:
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(self._executor, func),
                    timeout=self.timeout,
                )
            except TimeoutError as e:
                raise SourceUnavailable(
                    f"{operation_name} timed out after {self.timeout}s"
                ) from e
            except Exception as e:
                raise SourceUnavailable(f"{operation_name} failed: {e}") from e

    def _contract(self, token_address: str) -> Any:
        """Cached contract instance for decoding Transfer logs."""
        contract = self._contracts.get(token_address)
        if contract is None:
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(token_address),
                abi=ERC20_ABI,
            )
            self._contracts[token_address] = contract
        return contract

    async def fetch_range(
        self,
        token_address: str,
        from_block: int,
        to_block: int,
    ) -> list[RawEvent]:
        """
        Fetch Transfer events for a token in an inclusive block range.

        Args:
            token_address: Token contract
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Returns:
            Events ordered by (block_number, log_index)

        Raises:
            InvalidRange: If from_block > to_block (do not retry)
            SourceUnavailable: On transport failure (retry with backoff)
        """
        if from_block > to_block:
            raise InvalidRange(from_block, to_block)

        token = token_address.lower()
        params = {
            "address": Web3.to_checksum_address(token),
            "topics": [TRANSFER_TOPIC],
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        logs = await self._call(
            lambda: self.w3.eth.get_logs(params),
            operation_name=f"get_logs {mask_address(token)} [{from_block}, {to_block}]",
        )

        event_type = self._contract(token).events.Transfer()
        events = []
        for log in logs:
            if log.get("removed"):
                continue
            if len(log["topics"]) != ERC20_TRANSFER_TOPIC_COUNT:
                continue
            try:
                decoded = event_type.process_log(log)
            except MismatchedABI:
                logger.debug(f"[Source] Skipping undecodable log in {log['transactionHash']!r}")
                continue
            events.append(RawEvent.from_event_data(decoded, token))

        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events

    async def resolve_block_time(self, block_number: int) -> datetime:
        """
        Get block timestamp (UTC).

        Raises:
            SourceUnavailable: On transport failure
        """
        cached = self._block_times.get(block_number)
        if cached is not None:
            self._block_times.move_to_end(block_number)
            return cached

        block = await self._call(
            lambda: self.w3.eth.get_block(block_number),
            operation_name=f"get_block {block_number}",
        )
        timestamp = datetime.fromtimestamp(block["timestamp"], tz=UTC)

        self._block_times[block_number] = timestamp
        if len(self._block_times) > BLOCK_TIME_CACHE_SIZE:
            self._block_times.popitem(last=False)
        return timestamp

    async def current_frontier(self) -> int:
        """
        Highest block considered final.

        Raises:
            SourceUnavailable: On transport failure
        """
        head = await self._call(
            lambda: self.w3.eth.block_number,
            operation_name="block_number",
        )
        return max(0, head - self.confirmations)

    async def chain_id(self) -> int:
        """
        Chain ID reported by the node.

        Raises:
            SourceUnavailable: On transport failure
        """
        return await self._call(lambda: self.w3.eth.chain_id, operation_name="chain_id")

    def subscribe(
        self,
        token_address: str,
        from_block: int,
        poll_interval: float,
        max_range: int,
    ) -> Subscription:
        """
        Start delivering new Transfer events from a block onward.

        Delivery is at-least-once; consumers deduplicate by
        (transaction_hash, log_index).

        Args:
            token_address: Token contract
            from_block: First block to deliver (inclusive)
            poll_interval: Seconds between frontier polls
            max_range: Maximum blocks per poll

        Returns:
            Started subscription
        """
        subscription = Subscription(
            source=self,
            token_address=token_address.lower(),
            from_block=from_block,
            poll_interval=poll_interval,
            max_range=max_range,
        )
        subscription.start()
        return subscription

    async def close(self) -> None:
        """Release the thread pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)

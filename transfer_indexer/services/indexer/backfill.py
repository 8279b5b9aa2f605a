"""
Backfill driver.

Historical catch-up for one token: walks fixed-size block ranges from the
checkpoint to the frontier observed at start, persisting each range before
advancing the checkpoint past it.
"""

import asyncio

from loguru import logger

from transfer_indexer.services.event_source.types import EventSource
from transfer_indexer.services.stores import CheckpointStore, TransferStore
from transfer_indexer.utils.retry import BackoffPolicy
from transfer_indexer.utils.validation import mask_address

from .base import IndexingDriver
from .types import BackfillResult, TrackedEntity

# Log progress every N ranges
PROGRESS_LOG_EVERY = 10


class BackfillDriver(IndexingDriver):
    """Range-batched historical replay for a tracked token."""

    def __init__(
        self,
        source: EventSource,
        transfer_store: TransferStore,
        checkpoint_store: CheckpointStore,
        backoff: BackoffPolicy,
        batch_size: int,
        batch_delay: float = 0.0,
    ) -> None:
        """
        Initialize driver.

        Args:
            source: Event source
            transfer_store: Transfer store
            checkpoint_store: Checkpoint store
            backoff: Retry policy for every source/store call
            batch_size: Blocks per range
            batch_delay: Pause between ranges (seconds)
        """
        super().__init__(source, transfer_store, checkpoint_store, backoff)
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def run(self, entity: TrackedEntity) -> BackfillResult:
        """
        Index a token from its checkpoint up to the current frontier.

        A crash between insert and checkpoint write replays the same range
        on restart; duplicate rows are skipped by the store.

        Args:
            entity: Token to backfill

        Returns:
            BackfillResult with ranges processed and the final checkpoint

        Raises:
            EntityFatal: If retries are exhausted for any call
        """
        token = entity.token_address
        masked = mask_address(token)

        stored = await self._guarded(
            token,
            lambda: self.checkpoint_store.get(token),
            operation_name=f"checkpoint get {masked}",
        )
        current = stored if stored is not None else entity.start_block
        frontier = await self._guarded(
            token,
            self.source.current_frontier,
            operation_name="current_frontier",
        )

        result = BackfillResult(
            token_address=token,
            start_block=current,
            frontier=frontier,
            checkpoint=current,
        )

        if current >= frontier:
            logger.info(
                f"[Backfill] {masked} already up to date "
                f"(checkpoint={current}, frontier={frontier})"
            )
            return result

        if stored is None:
            logger.info(f"[Backfill] Initial index of {masked} from block {current}")
        else:
            logger.info(f"[Backfill] Resuming {masked} from block {current + 1}")

        total_blocks = frontier - current
        while current < frontier:
            from_block = current + 1
            to_block = min(current + self.batch_size, frontier)

            events = await self._guarded(
                token,
                lambda: self.source.fetch_range(token, from_block, to_block),
                operation_name=f"fetch_range {masked} [{from_block}, {to_block}]",
            )
            inserted = await self._persist(token, events)
            await self._guarded(
                token,
                lambda: self.checkpoint_store.set(token, to_block),
                operation_name=f"checkpoint set {masked} -> {to_block}",
            )

            current = to_block
            result.checkpoint = current
            result.ranges.append((from_block, to_block))
            result.inserted += inserted

            logger.debug(
                f"[Backfill] {masked} [{from_block}, {to_block}]: "
                f"{len(events)} events, {inserted} new"
            )
            if len(result.ranges) % PROGRESS_LOG_EVERY == 0:
                progress = (current - result.start_block) / total_blocks * 100
                logger.info(
                    f"[Backfill] {masked} progress: {progress:.1f}% "
                    f"({result.inserted} transfers stored)"
                )

            if self.batch_delay and current < frontier:
                await asyncio.sleep(self.batch_delay)

        logger.success(
            f"[Backfill] {masked} caught up to block {frontier}: "
            f"{result.inserted} transfers in {len(result.ranges)} ranges"
        )
        return result

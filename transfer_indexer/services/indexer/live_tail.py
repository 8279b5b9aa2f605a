"""
Live tail driver.

Consumes a token's subscription after backfill: persists each delivered
batch, then advances the checkpoint to the highest delivered block.
Broken subscriptions are reattached with backoff; too many consecutive
failures halt the token with EntityFatal.
"""

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger

from transfer_indexer.services.event_source.types import EventSource, RawEvent
from transfer_indexer.services.stores import CheckpointStore, TransferStore
from transfer_indexer.utils.exceptions import EntityFatal, SubscriptionBroken
from transfer_indexer.utils.retry import BackoffPolicy
from transfer_indexer.utils.validation import mask_address

from .base import IndexingDriver
from .types import TailState, TrackedEntity


class LiveTailDriver(IndexingDriver):
    """
    Push-driven indexing of new blocks.

    States: ATTACHING -> ACTIVE -> DETACHED. DETACHED is terminal and is
    entered on stop() or on a fatal failure.
    """

    def __init__(
        self,
        source: EventSource,
        transfer_store: TransferStore,
        checkpoint_store: CheckpointStore,
        backoff: BackoffPolicy,
        reconnect_backoff: BackoffPolicy,
        poll_interval: float,
        max_range: int,
        on_active: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize driver.

        Args:
            source: Event source
            transfer_store: Transfer store
            checkpoint_store: Checkpoint store
            backoff: Retry policy for store/source calls per delivery
            reconnect_backoff: Delays and ceiling for reattaching
            poll_interval: Subscription polling interval (seconds)
            max_range: Maximum blocks per subscription poll
            on_active: Called once, the first time the tail becomes ACTIVE
        """
        super().__init__(source, transfer_store, checkpoint_store, backoff)
        self.reconnect_backoff = reconnect_backoff
        self.poll_interval = poll_interval
        self.max_range = max_range
        self.on_active = on_active

        self.state = TailState.ATTACHING
        self.checkpoint: int | None = None
        self.inserted = 0
        self._task: asyncio.Task | None = None

    async def run(
        self,
        entity: TrackedEntity,
        from_block: int,
        checkpoint: int | None = None,
    ) -> None:
        """
        Tail a token until stopped or fatally failed.

        Args:
            entity: Token to tail
            from_block: First block to subscribe from (inclusive); overlap
                with backfill is absorbed by deduplication
            checkpoint: Checkpoint already stored for the token

        Raises:
            EntityFatal: When reattaching fails too many times in a row or
                a delivery cannot be persisted
        """
        if self.state is TailState.DETACHED:
            raise RuntimeError("Live tail already detached")

        token = entity.token_address
        masked = mask_address(token)
        self.checkpoint = checkpoint
        self._task = asyncio.current_task()

        subscribe_from = from_block
        failures = 0
        try:
            while True:
                self.state = TailState.ATTACHING
                subscription = self.source.subscribe(
                    token,
                    subscribe_from,
                    poll_interval=self.poll_interval,
                    max_range=self.max_range,
                )
                self._mark_active(masked, subscribe_from)

                try:
                    while True:
                        events = await subscription.get()
                        await self._deliver(token, events)
                        failures = 0
                except SubscriptionBroken as e:
                    if subscription.next_block > subscribe_from:
                        failures = 1
                    else:
                        failures += 1
                    subscribe_from = subscription.next_block

                    if failures >= self.reconnect_backoff.max_attempts:
                        raise EntityFatal(
                            token,
                            f"subscription failed {failures} times in a row: {e}",
                        ) from e

                    delay = self.reconnect_backoff.delay_for(failures)
                    logger.warning(
                        f"[LiveTail] {masked} subscription broken ({e}); "
                        f"reconnecting from block {subscribe_from} in {delay:.1f}s "
                        f"(attempt {failures}/{self.reconnect_backoff.max_attempts - 1})"
                    )
                    self.state = TailState.ATTACHING
                    await asyncio.sleep(delay)
                finally:
                    await subscription.close()
        finally:
            self.state = TailState.DETACHED
            self._task = None
            logger.info(f"[LiveTail] {masked} detached at checkpoint {self.checkpoint}")

    def _mark_active(self, masked: str, subscribe_from: int) -> None:
        """Transition to ACTIVE and fire on_active the first time."""
        self.state = TailState.ACTIVE
        logger.info(f"[LiveTail] {masked} watching from block {subscribe_from}")
        if self.on_active is not None:
            callback, self.on_active = self.on_active, None
            callback()

    async def _deliver(self, token: str, events: Sequence[RawEvent]) -> None:
        """
        Persist one delivery, then advance the checkpoint.

        The checkpoint only moves forward; a redelivery of already
        checkpointed blocks leaves it unchanged.
        """
        if not events:
            return

        inserted = await self._persist(token, events)
        self.inserted += inserted

        highest = max(event.block_number for event in events)
        if self.checkpoint is None or highest > self.checkpoint:
            await self._guarded(
                token,
                lambda: self.checkpoint_store.set(token, highest),
                operation_name=f"checkpoint set {mask_address(token)} -> {highest}",
            )
            self.checkpoint = highest

        logger.info(
            f"[LiveTail] {mask_address(token)}: {len(events)} events, "
            f"{inserted} new, checkpoint={self.checkpoint}"
        )

    def stop(self) -> None:
        """Detach: cancel the running tail, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        elif self._task is None:
            self.state = TailState.DETACHED

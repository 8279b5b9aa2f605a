"""
Shared driver plumbing.

Every store/source call made by a driver goes through _guarded, which
applies the backoff policy and classifies failures: transient errors are
retried, exhausted retries and invalid ranges become EntityFatal.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from transfer_indexer.services.event_source.types import EventSource, RawEvent
from transfer_indexer.services.records import TransferRecord, build_records
from transfer_indexer.services.stores import CheckpointStore, TransferStore
from transfer_indexer.utils.exceptions import EntityFatal, InvalidRange, RetryExhausted
from transfer_indexer.utils.retry import BackoffPolicy

T = TypeVar("T")


class IndexingDriver:
    """Base class for the backfill and live tail drivers."""

    def __init__(
        self,
        source: EventSource,
        transfer_store: TransferStore,
        checkpoint_store: CheckpointStore,
        backoff: BackoffPolicy,
    ) -> None:
        self.source = source
        self.transfer_store = transfer_store
        self.checkpoint_store = checkpoint_store
        self.backoff = backoff

    async def _guarded(
        self,
        token_address: str,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:
        """
        Run a call under the backoff policy.

        Raises:
            EntityFatal: On exhausted retries or an invalid range
        """
        try:
            return await self.backoff.run(operation, operation_name=operation_name)
        except RetryExhausted as e:
            raise EntityFatal(token_address, str(e)) from e
        except InvalidRange as e:
            raise EntityFatal(token_address, str(e)) from e

    async def _build_records(
        self, token_address: str, events: Sequence[RawEvent]
    ) -> list[TransferRecord]:
        """Resolve block times for a batch."""
        try:
            return await build_records(self.source, events, self.backoff)
        except RetryExhausted as e:
            raise EntityFatal(token_address, str(e)) from e

    async def _persist(
        self, token_address: str, events: Sequence[RawEvent]
    ) -> int:
        """Build records and insert them as one atomic batch."""
        if not events:
            return 0
        records = await self._build_records(token_address, events)
        return await self._guarded(
            token_address,
            lambda: self.transfer_store.insert_batch(records),
            operation_name=f"insert_batch ({len(records)} transfers)",
        )

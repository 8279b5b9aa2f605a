"""
Transfer records.

Normalizes raw events into immutable records ready for storage.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from transfer_indexer.services.event_source.types import EventSource, RawEvent
from transfer_indexer.utils.retry import BackoffPolicy


@dataclass(frozen=True, slots=True)
class TransferRecord:
    """One observed value transfer with its resolved block time."""

    transaction_hash: str
    block_number: int
    log_index: int
    token_address: str
    from_address: str
    to_address: str
    value: str
    block_timestamp: datetime

    @property
    def key(self) -> tuple[str, int]:
        """Idempotence key."""
        return self.transaction_hash, self.log_index

    @classmethod
    def from_raw(cls, event: RawEvent, block_timestamp: datetime) -> "TransferRecord":
        """Build record from a raw event."""
        return cls(
            transaction_hash=event.transaction_hash,
            block_number=event.block_number,
            log_index=event.log_index,
            token_address=event.token_address,
            from_address=event.from_address,
            to_address=event.to_address,
            value=str(event.value),
            block_timestamp=block_timestamp,
        )

    def as_row(self) -> dict[str, Any]:
        """Column dict for the transfers table."""
        return asdict(self)


async def build_records(
    source: EventSource,
    events: Sequence[RawEvent],
    backoff: BackoffPolicy,
) -> list[TransferRecord]:
    """
    Resolve block times and build records for a batch.

    Block times are resolved once per distinct block, concurrently. The
    first lookup that gives up cancels the others.

    Args:
        source: Event source for block lookups
        events: Raw events of one batch
        backoff: Retry policy for each lookup

    Returns:
        Records in the input order

    Raises:
        RetryExhausted: If a block time cannot be resolved
    """
    blocks = sorted({event.block_number for event in events})

    async def resolve(block_number: int) -> datetime:
        return await backoff.run(
            lambda: source.resolve_block_time(block_number),
            operation_name=f"resolve_block_time {block_number}",
        )

    try:
        async with asyncio.TaskGroup() as group:
            tasks = {b: group.create_task(resolve(b)) for b in blocks}
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None

    block_times = {b: task.result() for b, task in tasks.items()}

    return [
        TransferRecord.from_raw(event, block_times[event.block_number])
        for event in events
    ]

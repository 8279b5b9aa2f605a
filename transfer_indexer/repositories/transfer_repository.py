"""
Transfer repository.

Data access layer for indexed transfers: idempotent bulk insert plus the
read queries the API layer depends on.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_indexer.config.constants import INSERT_CHUNK_SIZE
from transfer_indexer.models.transfer import Transfer
from transfer_indexer.repositories.base import BaseRepository

SORTABLE_COLUMNS = {
    "block_number": (Transfer.block_number, Transfer.log_index),
    "block_timestamp": (Transfer.block_timestamp, Transfer.log_index),
}


class TransferRepository(BaseRepository[Transfer]):
    """Repository for indexed transfers."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Transfer, session)

    async def insert_batch(
        self,
        rows: Sequence[dict[str, Any]],
        chunk_size: int = INSERT_CHUNK_SIZE,
    ) -> int:
        """
        Insert transfers, skipping rows that already exist.

        Duplicates by (transaction_hash, log_index) are ignored, so replaying
        an overlapping range is safe. Does not commit.

        Args:
            rows: Column dicts for Transfer
            chunk_size: Rows per INSERT statement

        Returns:
            Number of newly inserted rows
        """
        inserted = 0
        for start in range(0, len(rows), chunk_size):
            chunk = list(rows[start:start + chunk_size])
            stmt = (
                self._insert()
                .values(chunk)
                .on_conflict_do_nothing(
                    index_elements=["transaction_hash", "log_index"]
                )
                .returning(Transfer.id)
            )
            result = await self.session.execute(stmt)
            inserted += len(result.all())
        return inserted

    async def get_by_event(
        self, transaction_hash: str, log_index: int
    ) -> Transfer | None:
        """Get transfer by its idempotence key."""
        return await self.get_by(
            transaction_hash=transaction_hash.lower(), log_index=log_index
        )

    def _conditions(
        self,
        address: str | None = None,
        token_address: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
    ) -> list:
        """Build WHERE conditions; all bounds inclusive."""
        conditions = []
        if address:
            addr = address.lower()
            conditions.append(
                or_(Transfer.from_address == addr, Transfer.to_address == addr)
            )
        if token_address:
            conditions.append(Transfer.token_address == token_address.lower())
        if from_block is not None:
            conditions.append(Transfer.block_number >= from_block)
        if to_block is not None:
            conditions.append(Transfer.block_number <= to_block)
        if from_timestamp is not None:
            conditions.append(Transfer.block_timestamp >= from_timestamp)
        if to_timestamp is not None:
            conditions.append(Transfer.block_timestamp <= to_timestamp)
        return conditions

    async def search(
        self,
        address: str | None = None,
        token_address: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
        sort_by: str = "block_number",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Transfer], int]:
        """
        Find transfers with filtering, ordering and pagination.

        Args:
            address: Participant (sender or recipient)
            token_address: Token contract
            from_block: Lowest block (inclusive)
            to_block: Highest block (inclusive)
            from_timestamp: Earliest block time (inclusive)
            to_timestamp: Latest block time (inclusive)
            sort_by: "block_number" or "block_timestamp"
            descending: Newest first when True
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (transfers, total_count)

        Raises:
            ValueError: If sort_by is not a sortable column
        """
        if sort_by not in SORTABLE_COLUMNS:
            raise ValueError(
                f"Cannot sort by {sort_by!r}; "
                f"expected one of {sorted(SORTABLE_COLUMNS)}"
            )

        conditions = self._conditions(
            address=address,
            token_address=token_address,
            from_block=from_block,
            to_block=to_block,
            from_timestamp=from_timestamp,
            to_timestamp=to_timestamp,
        )
        where = and_(*conditions) if conditions else None

        count_stmt = select(func.count()).select_from(Transfer)
        if where is not None:
            count_stmt = count_stmt.where(where)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        columns = SORTABLE_COLUMNS[sort_by]
        order = [c.desc() if descending else c.asc() for c in columns]

        stmt = select(Transfer)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(*order).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

"""
Checkpoint repository.

Data access layer for per-token indexing progress.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_indexer.models.checkpoint import IndexerCheckpoint
from transfer_indexer.repositories.base import BaseRepository


class CheckpointRepository(BaseRepository[IndexerCheckpoint]):
    """Repository for indexer checkpoints."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(IndexerCheckpoint, session)

    async def get_block(self, token_address: str) -> int | None:
        """
        Get last indexed block for a token.

        Returns:
            Block number or None if the token was never indexed
        """
        result = await self.session.execute(
            select(IndexerCheckpoint.last_indexed_block).where(
                IndexerCheckpoint.token_address == token_address.lower()
            )
        )
        return result.scalar_one_or_none()

    async def advance(self, token_address: str, block_number: int) -> None:
        """
        Upsert checkpoint, never moving it backward.

        The conditional DO UPDATE leaves the row untouched when the stored
        block is already >= block_number. Does not commit.

        Args:
            token_address: Token contract
            block_number: Last fully stored block (inclusive)
        """
        table = IndexerCheckpoint.__table__
        insert = self._insert()
        stmt = insert.values(
            token_address=token_address.lower(),
            last_indexed_block=block_number,
            updated_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["token_address"],
            set_={
                "last_indexed_block": stmt.excluded.last_indexed_block,
                "updated_at": stmt.excluded.updated_at,
            },
            where=table.c.last_indexed_block < stmt.excluded.last_indexed_block,
        )
        await self.session.execute(stmt)

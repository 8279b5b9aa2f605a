"""
Transfer and checkpoint stores.

Each call opens its own session from the injected session maker, runs in
one transaction, and maps database failures to StoreUnavailable.
"""

from collections.abc import Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transfer_indexer.repositories.checkpoint_repository import CheckpointRepository
from transfer_indexer.repositories.transfer_repository import TransferRepository
from transfer_indexer.services.records import TransferRecord
from transfer_indexer.utils.exceptions import StoreUnavailable
from transfer_indexer.utils.validation import mask_address


class TransferStore:
    """Append-only store of transfer records."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def insert_batch(self, records: Sequence[TransferRecord]) -> int:
        """
        Persist a batch atomically.

        Args:
            records: Transfer records to store

        Returns:
            Number of newly inserted rows (duplicates are skipped)

        Raises:
            StoreUnavailable: On any database failure; nothing is committed
        """
        if not records:
            return 0

        rows = [record.as_row() for record in records]
        try:
            async with self.session_maker() as session, session.begin():
                inserted = await TransferRepository(session).insert_batch(rows)
        except SQLAlchemyError as e:
            logger.warning(f"[Store] Insert of {len(rows)} transfers failed: {e}")
            raise StoreUnavailable(f"insert_batch failed: {e}") from e

        skipped = len(rows) - inserted
        if skipped:
            logger.debug(f"[Store] Skipped {skipped} duplicate transfers")
        return inserted


class CheckpointStore:
    """Durable per-token record of the last fully indexed block."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def get(self, token_address: str) -> int | None:
        """
        Get checkpoint for a token.

        Returns:
            Last indexed block, or None if never indexed

        Raises:
            StoreUnavailable: On database failure
        """
        try:
            async with self.session_maker() as session:
                return await CheckpointRepository(session).get_block(token_address)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"checkpoint read failed: {e}") from e

    async def set(self, token_address: str, block_number: int) -> None:
        """
        Advance checkpoint atomically; lower values are ignored.

        Raises:
            StoreUnavailable: On database failure; previous value stays
        """
        try:
            async with self.session_maker() as session, session.begin():
                await CheckpointRepository(session).advance(token_address, block_number)
        except SQLAlchemyError as e:
            logger.warning(
                f"[Store] Checkpoint {mask_address(token_address)} -> "
                f"{block_number} failed: {e}"
            )
            raise StoreUnavailable(f"checkpoint write failed: {e}") from e

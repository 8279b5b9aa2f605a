"""
Transfer queries.

Read side used by the API layer. All methods query the database only,
zero RPC calls.
"""

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transfer_indexer.models.transfer import Transfer
from transfer_indexer.repositories.checkpoint_repository import CheckpointRepository
from transfer_indexer.repositories.transfer_repository import TransferRepository
from transfer_indexer.utils.exceptions import StoreUnavailable
from transfer_indexer.utils.validation import normalize_address

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class IndexingStatus:
    """
    Freshness of indexed data for one token.

    A token with no checkpoint, or one behind the frontier, has partial
    data; that is reported, never treated as an error.
    """

    token_address: str
    last_indexed_block: int | None
    frontier: int | None = None

    @property
    def is_partial(self) -> bool:
        """True when readers may be missing recent transfers."""
        if self.last_indexed_block is None:
            return True
        return self.frontier is not None and self.last_indexed_block < self.frontier

    def as_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "token_address": self.token_address,
            "last_indexed_block": self.last_indexed_block,
            "frontier": self.frontier,
            "partial": self.is_partial,
        }


def serialize_transfer(transfer: Transfer, address: str | None = None) -> dict:
    """
    Format transfer for API responses.

    Args:
        transfer: Stored transfer
        address: Queried participant; adds "direction" when given
    """
    data = {
        "id": transfer.id,
        "transaction_hash": transfer.transaction_hash,
        "block_number": str(transfer.block_number),
        "log_index": transfer.log_index,
        "block_timestamp": transfer.block_timestamp.isoformat(),
        "token_address": transfer.token_address,
        "from": transfer.from_address,
        "to": transfer.to_address,
        "value": transfer.value,
    }
    if address:
        data["direction"] = transfer.direction_for(address)
    return data


class TransferQueryService:
    """Read-only access to indexed transfers and indexing progress."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def get_transfers(
        self,
        address: str | None = None,
        token_address: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
        sort_by: str = "block_number",
        order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """
        Get a page of transfers.

        Args:
            address: Participant address (sender or recipient)
            token_address: Token contract
            from_block: Lowest block (inclusive)
            to_block: Highest block (inclusive)
            from_timestamp: Earliest block time (inclusive)
            to_timestamp: Latest block time (inclusive)
            sort_by: "block_number" or "block_timestamp"
            order: "asc" or "desc"
            page: 1-indexed page number
            limit: Page size (capped at MAX_PAGE_SIZE)

        Returns:
            Dict with transfers and pagination

        Raises:
            ValueError: On invalid address, order, page or sort column
            StoreUnavailable: On database failure
        """
        if order not in ("asc", "desc"):
            raise ValueError("order must be 'asc' or 'desc'")
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        limit = min(limit, MAX_PAGE_SIZE)
        address = normalize_address(address) if address else None
        token_address = normalize_address(token_address) if token_address else None

        try:
            async with self.session_maker() as session:
                transfers, total = await TransferRepository(session).search(
                    address=address,
                    token_address=token_address,
                    from_block=from_block,
                    to_block=to_block,
                    from_timestamp=from_timestamp,
                    to_timestamp=to_timestamp,
                    sort_by=sort_by,
                    descending=order == "desc",
                    limit=limit,
                    offset=(page - 1) * limit,
                )
        except SQLAlchemyError as e:
            logger.error(f"[Queries] Transfer lookup failed: {e}")
            raise StoreUnavailable(f"transfer query failed: {e}") from e

        return {
            "transfers": [serialize_transfer(t, address) for t in transfers],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    async def get_indexing_status(
        self,
        token_addresses: list[str],
        frontier: int | None = None,
    ) -> list[IndexingStatus]:
        """
        Report last indexed block per token.

        Args:
            token_addresses: Tokens to report
            frontier: Current frontier, if known, to flag lagging tokens

        Raises:
            StoreUnavailable: On database failure
        """
        try:
            async with self.session_maker() as session:
                repo = CheckpointRepository(session)
                return [
                    IndexingStatus(
                        token_address=token.lower(),
                        last_indexed_block=await repo.get_block(token),
                        frontier=frontier,
                    )
                    for token in token_addresses
                ]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"status query failed: {e}") from e

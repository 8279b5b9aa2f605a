"""
Indexer checkpoint model.

One row per tracked token: the last block whose events are fully stored.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from transfer_indexer.config.constants import ADDRESS_LENGTH
from transfer_indexer.models.base import Base


class IndexerCheckpoint(Base):
    """
    Tracks indexing progress per token.

    Used to:
    - Resume after restart without re-scanning indexed ranges
    - Report "partial data, last updated at block N" to readers
    """

    __tablename__ = "indexer_checkpoints"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    token_address: Mapped[str] = mapped_column(
        String(ADDRESS_LENGTH), nullable=False, unique=True, index=True
    )

    # Inclusive: every event up to and including this block is stored
    last_indexed_block: Mapped[int] = mapped_column(BigInteger, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<IndexerCheckpoint(token={self.token_address}, "
            f"block={self.last_indexed_block})>"
        )

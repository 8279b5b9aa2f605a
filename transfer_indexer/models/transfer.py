"""
Transfer model.

One row per observed ERC-20 Transfer event. Rows are immutable once stored;
(transaction_hash, log_index) is the idempotence key.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_indexer.config.constants import (
    ADDRESS_LENGTH,
    TX_HASH_LENGTH,
    UINT256_MAX_DIGITS,
)
from transfer_indexer.models.base import Base


class Transfer(Base):
    """
    Indexed token transfer.

    Addresses are stored lower-cased. The value is the raw uint256 amount
    as a decimal string so no precision is lost.
    """

    __tablename__ = "transfers"
    __table_args__ = (
        UniqueConstraint(
            "transaction_hash", "log_index", name="uq_transfers_tx_hash_log_index"
        ),
        Index("idx_transfers_token_block", "token_address", "block_number"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    # Event identification
    transaction_hash: Mapped[str] = mapped_column(
        String(TX_HASH_LENGTH), nullable=False
    )
    block_number: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    block_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Token and participants
    token_address: Mapped[str] = mapped_column(
        String(ADDRESS_LENGTH), nullable=False, index=True
    )
    from_address: Mapped[str] = mapped_column(
        String(ADDRESS_LENGTH), nullable=False, index=True
    )
    to_address: Mapped[str] = mapped_column(
        String(ADDRESS_LENGTH), nullable=False, index=True
    )

    # Raw amount (uint256 as decimal string)
    value: Mapped[str] = mapped_column(String(UINT256_MAX_DIGITS), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Transfer(tx_hash={self.transaction_hash[:16]}..., "
            f"log_index={self.log_index}, block={self.block_number}, "
            f"value={self.value})>"
        )

    def direction_for(self, address: str) -> str:
        """Direction of this transfer relative to an address."""
        return "outgoing" if self.from_address == address.lower() else "incoming"

"""Create transfers and indexer checkpoint tables.

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17

Transfers are unique on (transaction_hash, log_index) so re-indexing a
range never duplicates rows. One checkpoint row per tracked token.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create transfers and indexer_checkpoints tables."""
    op.create_table(
        "transfers",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        # Event identification
        sa.Column("transaction_hash", sa.String(length=66), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("block_timestamp", sa.DateTime(timezone=True), nullable=False),
        # Token and participants
        sa.Column("token_address", sa.String(length=42), nullable=False),
        sa.Column("from_address", sa.String(length=42), nullable=False),
        sa.Column("to_address", sa.String(length=42), nullable=False),
        # Raw uint256 amount
        sa.Column("value", sa.String(length=78), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "transaction_hash", "log_index", name="uq_transfers_tx_hash_log_index"
        ),
    )

    op.create_index("ix_transfers_block_number", "transfers", ["block_number"])
    op.create_index("ix_transfers_block_timestamp", "transfers", ["block_timestamp"])
    op.create_index("ix_transfers_token_address", "transfers", ["token_address"])
    op.create_index("ix_transfers_from_address", "transfers", ["from_address"])
    op.create_index("ix_transfers_to_address", "transfers", ["to_address"])
    op.create_index(
        "idx_transfers_token_block", "transfers", ["token_address", "block_number"]
    )

    op.create_table(
        "indexer_checkpoints",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("token_address", sa.String(length=42), nullable=False),
        sa.Column("last_indexed_block", sa.BigInteger(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_indexer_checkpoints_token_address",
        "indexer_checkpoints",
        ["token_address"],
        unique=True,
    )


def downgrade() -> None:
    """Drop indexer tables."""
    op.drop_index("ix_indexer_checkpoints_token_address", table_name="indexer_checkpoints")
    op.drop_table("indexer_checkpoints")

    op.drop_index("idx_transfers_token_block", table_name="transfers")
    op.drop_index("ix_transfers_to_address", table_name="transfers")
    op.drop_index("ix_transfers_from_address", table_name="transfers")
    op.drop_index("ix_transfers_token_address", table_name="transfers")
    op.drop_index("ix_transfers_block_timestamp", table_name="transfers")
    op.drop_index("ix_transfers_block_number", table_name="transfers")
    op.drop_table("transfers")

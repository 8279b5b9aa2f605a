"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from transfer_indexer.models.base import Base
from transfer_indexer.models.checkpoint import IndexerCheckpoint
from transfer_indexer.models.transfer import Transfer

__all__ = [
    "Base",
    "IndexerCheckpoint",
    "Transfer",
]

"""Repositories package."""

from transfer_indexer.repositories.checkpoint_repository import CheckpointRepository
from transfer_indexer.repositories.transfer_repository import TransferRepository

__all__ = ["CheckpointRepository", "TransferRepository"]

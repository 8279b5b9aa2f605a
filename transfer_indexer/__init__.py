"""
ERC-20 Transfer Indexer.

Reconstructs a deduplicated, queryable history of token Transfer events
and keeps it up to date.

Key features:
- Checkpointed, range-batched backfill from the last indexed block
- Live tail of new blocks without gaps (overlap is absorbed by dedup)
- Idempotent bulk inserts keyed by (transaction_hash, log_index)
"""

__version__ = "0.1.0"

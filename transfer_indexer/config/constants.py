"""
Indexer constants.

Centralized defaults and limits for the indexing engine.
"""

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_TIMEOUT = 30.0  # Standard RPC calls (block_number, get_block)

# RPC concurrency
RPC_MAX_CONCURRENT = 8  # Maximum concurrent RPC calls per process
RPC_EXECUTOR_WORKERS = 8  # Thread pool size for sync Web3 calls

# Block timestamp cache
BLOCK_TIME_CACHE_SIZE = 4096  # Recently resolved block timestamps kept in memory

# ========================================================================
# INDEXING DEFAULTS
# ========================================================================

DEFAULT_BATCH_SIZE = 10000  # Blocks per backfill range
DEFAULT_BATCH_DELAY = 0.1  # Seconds between backfill ranges
DEFAULT_POLL_INTERVAL = 5.0  # Seconds between live tail polls

# Retry policy (exponential backoff: 1s, 2s, 4s, 8s, ...)
RETRY_INITIAL_DELAY = 1.0
RETRY_MULTIPLIER = 2.0
RETRY_MAX_DELAY = 60.0
RETRY_MAX_ATTEMPTS = 5
RECONNECT_MAX_ATTEMPTS = 10

# ========================================================================
# STORAGE
# ========================================================================

# Rows per INSERT statement (PostgreSQL caps bind parameters at 32767)
INSERT_CHUNK_SIZE = 1000

# Column sizes
TX_HASH_LENGTH = 66
ADDRESS_LENGTH = 42
UINT256_MAX_DIGITS = 78

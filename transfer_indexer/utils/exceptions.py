"""
Indexer exception taxonomy.

Transient errors (retry with backoff):
- SourceUnavailable: RPC transport failure
- StoreUnavailable: database failure, the whole batch is retried
- SubscriptionBroken: live subscription lost, reconnect

Fatal errors:
- InvalidRange: programming error, never retried
- EntityFatal: retry ceiling exceeded, indexing halts for one token
- AlreadyRunning: orchestrator start() outside STOPPED
"""


class IndexerError(Exception):
    """Base exception for the indexing engine."""


class SourceUnavailable(IndexerError):
    """Raised when the event source cannot be reached."""


class InvalidRange(IndexerError):
    """Raised when a block range is reversed."""

    def __init__(self, from_block: int, to_block: int) -> None:
        self.from_block = from_block
        self.to_block = to_block
        super().__init__(f"Invalid block range: {from_block} > {to_block}")


class StoreUnavailable(IndexerError):
    """Raised when the database rejects or cannot complete a write."""


class SubscriptionBroken(IndexerError):
    """Raised when a live subscription stops delivering."""


class RetryExhausted(IndexerError):
    """Raised by BackoffPolicy when all attempts fail."""

    def __init__(self, operation_name: str, attempts: int, last_error: BaseException) -> None:
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation_name} failed after {attempts} attempts: {last_error}"
        )


class EntityFatal(IndexerError):
    """Raised when indexing of a single token cannot continue."""

    def __init__(self, token_address: str, reason: str) -> None:
        self.token_address = token_address
        self.reason = reason
        super().__init__(f"Indexing halted for {token_address}: {reason}")


class AlreadyRunning(IndexerError):
    """Raised when the orchestrator is started twice."""


# Exception categories based on handling strategy
TRANSIENT_ERRORS = (SourceUnavailable, StoreUnavailable, SubscriptionBroken)

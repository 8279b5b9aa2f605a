"""
Indexer types: tracked entities, driver configuration, results, states.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from transfer_indexer.config.constants import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_POLL_INTERVAL,
    RECONNECT_MAX_ATTEMPTS,
)
from transfer_indexer.config.settings import Settings
from transfer_indexer.utils.retry import BackoffPolicy


@dataclass(frozen=True)
class TrackedEntity:
    """A token contract whose events are checkpointed independently."""

    token_address: str
    start_block: int = 0


@dataclass(frozen=True)
class IndexerConfig:
    """Driver tuning, fixed for the lifetime of an orchestrator."""

    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    reconnect_backoff: BackoffPolicy = field(
        default_factory=lambda: BackoffPolicy(max_attempts=RECONNECT_MAX_ATTEMPTS)
    )

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "IndexerConfig":
        """Build driver configuration from application settings."""
        return cls(
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay,
            poll_interval=settings.poll_interval,
            backoff=BackoffPolicy.from_settings(settings),
            reconnect_backoff=BackoffPolicy.from_settings(
                settings, max_attempts=settings.reconnect_max_attempts
            ),
        )


@dataclass
class BackfillResult:
    """Outcome of one backfill run."""

    token_address: str
    start_block: int
    frontier: int
    checkpoint: int
    ranges: list[tuple[int, int]] = field(default_factory=list)
    inserted: int = 0

    @property
    def was_noop(self) -> bool:
        """True when the token was already caught up."""
        return not self.ranges


class TailState(StrEnum):
    """Live tail lifecycle."""

    ATTACHING = "attaching"
    ACTIVE = "active"
    DETACHED = "detached"


class OrchestratorState(StrEnum):
    """Orchestrator lifecycle."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class EntityPhase(StrEnum):
    """Where a tracked token is in its backfill-then-tail sequence."""

    PENDING = "pending"
    BACKFILL = "backfill"
    LIVE = "live"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class EntityStatus:
    """Observable per-token state."""

    token_address: str
    phase: EntityPhase = EntityPhase.PENDING
    checkpoint: int | None = None
    frontier: int | None = None
    inserted: int = 0
    last_error: str | None = None

    def as_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "token_address": self.token_address,
            "phase": self.phase.value,
            "checkpoint": self.checkpoint,
            "frontier": self.frontier,
            "inserted": self.inserted,
            "last_error": self.last_error,
        }

"""
Indexing engine.

Backfill driver, live tail driver and the orchestrator that sequences them
per tracked token.
"""

from .backfill import BackfillDriver
from .live_tail import LiveTailDriver
from .orchestrator import IndexingOrchestrator
from .types import (
    BackfillResult,
    EntityPhase,
    EntityStatus,
    IndexerConfig,
    OrchestratorState,
    TailState,
    TrackedEntity,
)

__all__ = [
    "BackfillDriver",
    "BackfillResult",
    "EntityPhase",
    "EntityStatus",
    "IndexerConfig",
    "IndexingOrchestrator",
    "LiveTailDriver",
    "OrchestratorState",
    "TailState",
    "TrackedEntity",
]

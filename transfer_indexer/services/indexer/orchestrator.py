"""
Indexing orchestrator.

Owns the tracked tokens and runs, for each one, backfill to completion and
then a live tail. Tokens are indexed concurrently; a fatal failure of one
token is recorded and does not affect the others.
"""

import asyncio
import contextlib
from collections.abc import Iterable

from loguru import logger

from transfer_indexer.services.event_source.types import EventSource
from transfer_indexer.services.stores import CheckpointStore, TransferStore
from transfer_indexer.utils.exceptions import AlreadyRunning, EntityFatal
from transfer_indexer.utils.validation import mask_address

from .backfill import BackfillDriver
from .live_tail import LiveTailDriver
from .types import (
    EntityPhase,
    EntityStatus,
    IndexerConfig,
    OrchestratorState,
    TailState,
    TrackedEntity,
)


class IndexingOrchestrator:
    """
    Lifecycle owner for all tracked tokens.

    States: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.
    """

    def __init__(
        self,
        source: EventSource,
        transfer_store: TransferStore,
        checkpoint_store: CheckpointStore,
        entities: Iterable[TrackedEntity],
        config: IndexerConfig | None = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            source: Event source shared by all drivers
            transfer_store: Transfer store shared by all drivers
            checkpoint_store: Checkpoint store shared by all drivers
            entities: Tokens to index
            config: Driver tuning
        """
        self.source = source
        self.transfer_store = transfer_store
        self.checkpoint_store = checkpoint_store
        self.entities = list(entities)
        self.config = config or IndexerConfig()

        tokens = [e.token_address for e in self.entities]
        if len(set(tokens)) != len(tokens):
            raise ValueError("Tracked tokens must be unique")

        self.state = OrchestratorState.STOPPED
        self.statuses: dict[str, EntityStatus] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._tails: dict[str, LiveTailDriver] = {}

    async def start(self) -> None:
        """
        Start indexing every tracked token.

        Returns once each token has an active live tail or has failed.

        Raises:
            AlreadyRunning: If not STOPPED
        """
        if self.state is not OrchestratorState.STOPPED:
            raise AlreadyRunning(f"Orchestrator is {self.state.value}")

        self.state = OrchestratorState.STARTING
        logger.info(f"[Orchestrator] Starting with {len(self.entities)} tokens")

        self.statuses = {
            e.token_address: EntityStatus(token_address=e.token_address)
            for e in self.entities
        }
        self._tails = {}
        ready_events = []
        for entity in self.entities:
            ready = asyncio.Event()
            ready_events.append(ready)
            self._tasks[entity.token_address] = asyncio.create_task(
                self._run_entity(entity, ready),
                name=f"indexer-{entity.token_address}",
            )

        await asyncio.gather(*(ready.wait() for ready in ready_events))

        if self.state is OrchestratorState.STARTING:
            self.state = OrchestratorState.RUNNING
            failed = [s for s in self.statuses.values() if s.phase is EntityPhase.FAILED]
            logger.info(
                f"[Orchestrator] Running: {len(self.entities) - len(failed)} live, "
                f"{len(failed)} failed"
            )

    async def _run_entity(self, entity: TrackedEntity, ready: asyncio.Event) -> None:
        """Backfill then tail one token; strictly sequential per token."""
        token = entity.token_address
        masked = mask_address(token)
        status = self.statuses[token]

        try:
            status.phase = EntityPhase.BACKFILL
            backfill = BackfillDriver(
                self.source,
                self.transfer_store,
                self.checkpoint_store,
                backoff=self.config.backoff,
                batch_size=self.config.batch_size,
                batch_delay=self.config.batch_delay,
            )
            result = await backfill.run(entity)
            status.checkpoint = result.checkpoint
            status.frontier = result.frontier
            status.inserted = result.inserted
            logger.info(f"[Orchestrator] {masked} caught up to block {result.checkpoint}")

            tail = LiveTailDriver(
                self.source,
                self.transfer_store,
                self.checkpoint_store,
                backoff=self.config.backoff,
                reconnect_backoff=self.config.reconnect_backoff,
                poll_interval=self.config.poll_interval,
                max_range=self.config.batch_size,
                on_active=ready.set,
            )
            self._tails[token] = tail
            status.phase = EntityPhase.LIVE

            # Subscribe from the backfill frontier so no block is skipped
            if result.checkpoint <= result.frontier:
                from_block = result.frontier
            else:
                from_block = result.checkpoint + 1
            await tail.run(entity, from_block=from_block, checkpoint=result.checkpoint)

        except EntityFatal as e:
            status.phase = EntityPhase.FAILED
            status.last_error = e.reason
            logger.error(f"[Orchestrator] Entity failed: {masked}: {e.reason}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            status.phase = EntityPhase.FAILED
            status.last_error = str(e)
            logger.exception(f"[Orchestrator] Unexpected error indexing {masked}: {e}")
        finally:
            if status.phase is not EntityPhase.FAILED:
                status.phase = EntityPhase.STOPPED
            ready.set()

    async def stop(self) -> None:
        """
        Detach all live tails and stop. Idempotent.

        In-flight batches are aborted before their checkpoint write, so the
        checkpoint never passes unpersisted data.
        """
        if self.state in (OrchestratorState.STOPPED, OrchestratorState.STOPPING):
            return

        self.state = OrchestratorState.STOPPING
        logger.info("[Orchestrator] Stopping...")

        for tail in self._tails.values():
            tail.stop()
        for task in self._tasks.values():
            task.cancel()

        for token, task in self._tasks.items():
            with contextlib.suppress(asyncio.CancelledError):
                await task
            tail = self._tails.get(token)
            if tail is not None and tail.checkpoint is not None:
                self.statuses[token].checkpoint = tail.checkpoint

        self._tasks = {}
        self._tails = {}
        self.state = OrchestratorState.STOPPED
        logger.info("[Orchestrator] Stopped")

    async def wait(self) -> None:
        """Wait until every token task has finished (stopped or failed)."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def status(self) -> dict:
        """
        Snapshot of orchestrator and per-token state.

        Returns:
            Dict with state and entities list
        """
        entities = []
        for token, status in self.statuses.items():
            tail = self._tails.get(token)
            snapshot = status.as_dict()
            if tail is not None:
                if tail.checkpoint is not None:
                    snapshot["checkpoint"] = tail.checkpoint
                snapshot["tail_state"] = tail.state.value
                snapshot["inserted"] = status.inserted + tail.inserted
            else:
                snapshot["tail_state"] = TailState.DETACHED.value
            entities.append(snapshot)

        return {"state": self.state.value, "entities": entities}

"""
Indexer entry point.

Usage:
    python -m transfer_indexer [run]
    python -m transfer_indexer status
    python -m transfer_indexer init-db
"""

import argparse
import asyncio
import contextlib
import signal
import sys

from loguru import logger

from transfer_indexer.config.database import create_engine, create_session_maker, create_tables
from transfer_indexer.config.settings import Settings, get_settings
from transfer_indexer.health import start_health_server, stop_health_server
from transfer_indexer.services.event_source import Web3EventSource
from transfer_indexer.services.indexer import IndexerConfig, IndexingOrchestrator, TrackedEntity
from transfer_indexer.services.queries import TransferQueryService
from transfer_indexer.services.stores import CheckpointStore, TransferStore
from transfer_indexer.utils.exceptions import IndexerError
from transfer_indexer.utils.logging import setup_logging


async def run_indexer(settings: Settings) -> None:
    """Run backfill and live tail for all configured tokens until signalled."""
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)
    source = Web3EventSource.from_settings(settings)

    orchestrator = IndexingOrchestrator(
        source=source,
        transfer_store=TransferStore(session_maker),
        checkpoint_store=CheckpointStore(session_maker),
        entities=[
            TrackedEntity(token_address=token, start_block=settings.start_block)
            for token in settings.get_token_addresses()
        ],
        config=IndexerConfig.from_settings(settings),
    )

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    health_runner = None
    start_task = None
    try:
        node_chain_id = await source.chain_id()
        if node_chain_id != settings.chain_id:
            raise IndexerError(
                f"RPC node is on chain {node_chain_id}, expected {settings.chain_id}"
            )

        if settings.health_check_port:
            health_runner = await start_health_server(
                orchestrator, port=settings.health_check_port
            )

        start_task = asyncio.create_task(orchestrator.start())
        stop_task = asyncio.create_task(stop_requested.wait())
        await asyncio.wait({start_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

        if start_task.done():
            start_task.result()
            done_task = asyncio.create_task(orchestrator.wait())
            await asyncio.wait({done_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if done_task.done():
                logger.warning("All token tasks finished, shutting down")
        else:
            logger.info("Shutdown requested during startup")
        stop_task.cancel()

    finally:
        await orchestrator.stop()
        if start_task is not None and not start_task.done():
            with contextlib.suppress(asyncio.CancelledError, IndexerError):
                await start_task
        await source.close()
        if health_runner is not None:
            await stop_health_server(health_runner)
        await engine.dispose()
        logger.info("Indexer shutdown complete")


async def show_status(settings: Settings) -> None:
    """Print last indexed block for each configured token."""
    engine = create_engine(settings)
    try:
        service = TransferQueryService(create_session_maker(engine))
        statuses = await service.get_indexing_status(settings.get_token_addresses())
    finally:
        await engine.dispose()

    for status in statuses:
        block = status.last_indexed_block
        note = " (partial data)" if status.is_partial else ""
        print(f"{status.token_address}  {block if block is not None else '-'}{note}")


async def init_db(settings: Settings) -> None:
    """Create tables directly from model metadata."""
    engine = create_engine(settings)
    try:
        await create_tables(engine)
        logger.info("Database tables created")
    finally:
        await engine.dispose()


COMMANDS = {
    "run": run_indexer,
    "status": show_status,
    "init-db": init_db,
}


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="transfer-indexer",
        description="Index ERC-20 Transfer events into the database",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=sorted(COMMANDS),
        help="Command to execute (default: run)",
    )
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file if args.command == "run" else None)

    try:
        asyncio.run(COMMANDS[args.command](settings))
    except KeyboardInterrupt:
        logger.info("Indexer stopped by user (KeyboardInterrupt)")
    except IndexerError as e:
        logger.error(f"Indexer error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

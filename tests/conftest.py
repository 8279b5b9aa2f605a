"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment so Settings() can load during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TOKEN_ADDRESSES", "0x" + "a" * 40)
os.environ.setdefault("RPC_URL", "http://127.0.0.1:8545")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from tests.fakes import FakeEventSource, MemoryCheckpointStore, MemoryTransferStore
from transfer_indexer.config.database import create_session_maker, create_tables
from transfer_indexer.utils.retry import BackoffPolicy


@pytest.fixture
def fast_backoff():
    """Backoff policy without delays."""
    return BackoffPolicy(initial_delay=0, multiplier=1, max_delay=0, max_attempts=3)


@pytest.fixture
def source():
    """Empty fake event source."""
    return FakeEventSource()


@pytest.fixture
def transfer_store():
    """In-memory transfer store."""
    return MemoryTransferStore()


@pytest.fixture
def checkpoint_store():
    """In-memory checkpoint store."""
    return MemoryCheckpointStore()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session maker bound to the test database."""
    return create_session_maker(db_engine)

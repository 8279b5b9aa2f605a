"""
Database engine and session factories.

The engine is created by the orchestrator's owner and disposed on shutdown;
nothing here is a module-level singleton.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from transfer_indexer.config.settings import Settings
from transfer_indexer.models.base import Base


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    kwargs = {}
    if settings.database_url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=5, pool_pre_ping=True)

    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        **kwargs,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables from model metadata (development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

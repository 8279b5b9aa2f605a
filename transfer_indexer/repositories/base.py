"""
Base repository.

Generic read operations and dialect-aware INSERT construction.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_indexer.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic async operations.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class TransferRepository(BaseRepository[Transfer]):
            def __init__(self, session: AsyncSession):
                super().__init__(Transfer, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by(self, **filters: Any) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    def _insert(self):
        """
        Dialect-specific INSERT supporting ON CONFLICT clauses.

        Returns:
            postgresql.insert or sqlite.insert bound to the model
        """
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(self.model)
        if dialect == "sqlite":
            return sqlite.insert(self.model)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

"""
Base repository class with common CRUD operations.
"""
from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from shipyard.core.exceptions import ConflictError

T = TypeVar("T", bound=DeclarativeBase)


class BaseRepository(Generic[T]):
    """
    Generic base repository for CRUD operations.

    Subclass this and set the `model` class attribute to your SQLAlchemy model.
    """

    model: Type[T]

    def __init__(self, db: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy async session
        """
        self.db = db

    async def get_by_id(self, id: int) -> Optional[T]:
        """
        Get a single record by ID.

        Args:
            id: Record ID

        Returns:
            Record if found, None otherwise
        """
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, entity: T) -> T:
        """
        Create a new record.

        Raises:
            ConflictError: If a unique constraint is violated
        """
        self.db.add(entity)
        await self.commit(self.model.__tablename__)
        await self.db.refresh(entity)
        return entity

    async def commit(self, resource: Optional[str] = None) -> None:
        """
        Commit the session, translating unique violations to ConflictError.
        """
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(resource or self.model.__tablename__, str(e.orig))

import uuid as uuid_pkg
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseOperations(Generic[ModelType]):
    """Base CRUD operations for all models."""

    def __init__(self, model: type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id: uuid_pkg.UUID) -> ModelType | None:
        """Get a single record by ID."""
        statement = select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_for_update(self, db: AsyncSession, id: uuid_pkg.UUID) -> ModelType | None:
        """Get a single record by ID and lock its row until the transaction ends.

        Concurrent writers on the same row queue behind the lock, so a
        read-check-write sequence built on this sees committed state. An
        instance already loaded in the session is overwritten with the locked
        row (populate_existing), otherwise its counters would be stale.
        """
        statement = (
            select(self.model)
            .where(self.model.id == id)  # type: ignore[attr-defined]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def delete(self, db: AsyncSession, id: uuid_pkg.UUID) -> bool:
        """Hard-delete a record by ID. Returns False when it does not exist."""
        db_obj = await self.get(db, id)
        if db_obj:
            await db.delete(db_obj)
            await db.flush()
            return True
        return False

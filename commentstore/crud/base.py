"""
Generic async CRUD base class.
Domain CRUD classes extend CRUDBase for primary-key access and single-row writes;
business rules and error translation live in the service layer.
"""
from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commentstore.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    Generic CRUD operations for SQLAlchemy async ORM models.

    Type parameters:
        ModelType: The SQLAlchemy ORM model class.
    """

    def __init__(self, model: type[ModelType]) -> None:
        self.model = model

    async def get(self, db: AsyncSession, id: uuid.UUID) -> ModelType | None:
        """Fetch a single record by primary key."""
        result = await db.execute(select(self.model).where(self.model.id == id))  # type: ignore[attr-defined]
        return result.scalar_one_or_none()

    async def get_many(
        self, db: AsyncSession, ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, ModelType]:
        """Fetch the records among ``ids`` that exist, keyed by primary key."""
        wanted = set(ids)
        if not wanted:
            return {}
        result = await db.execute(
            select(self.model).where(self.model.id.in_(wanted))  # type: ignore[attr-defined]
        )
        return {obj.id: obj for obj in result.scalars().all()}  # type: ignore[attr-defined]

    async def create_from_dict(
        self, db: AsyncSession, *, obj_in: dict[str, Any]
    ) -> ModelType:
        """Insert a new record from a plain dictionary."""
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def create_many(
        self, db: AsyncSession, *, objs_in: list[dict[str, Any]]
    ) -> list[ModelType]:
        """Insert several records in the given order with a single flush."""
        db_objs = [self.model(**obj_in) for obj_in in objs_in]
        db.add_all(db_objs)
        await db.flush()
        for db_obj in db_objs:
            await db.refresh(db_obj)
        return db_objs

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: dict[str, Any],
    ) -> ModelType:
        """Apply the given column values to an existing record."""
        for field, value in obj_in.items():
            setattr(db_obj, field, value)

        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def remove(self, db: AsyncSession, *, db_obj: ModelType) -> ModelType:
        """Delete a loaded record."""
        await db.delete(db_obj)
        await db.flush()
        return db_obj

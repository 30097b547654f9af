"""Generic repository shared by the model-specific repositories.

Repositories only flush; committing is left to the caller, which wraps a
whole use case (a transaction write plus the holding recompute it causes)
in ``transactional()``.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


def _as_values(obj_in: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(obj_in, BaseModel):
        return obj_in.model_dump(exclude_unset=True)
    return dict(obj_in)


class BaseRepository(Generic[ModelType]):
    """Primary-key lookup and flush-only writes for one model.

    Example:
        >>> repo = TransactionRepository(Transaction, db)
        >>> async with transactional(db):
        ...     row = await repo.create(obj_in={"user_id": 1, "asset_id": "bitcoin", ...})
    """

    def __init__(self, model: type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any) -> ModelType | None:
        """Get a row by primary key, or None."""
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalar_one_or_none()

    async def create(self, *, obj_in: BaseModel | dict[str, Any]) -> ModelType:
        """Insert a row and load its server-side defaults.

        Args:
            obj_in: Schema or mapping of column values

        Returns:
            The flushed instance
        """
        db_obj = self.model(**_as_values(obj_in))
        self.db.add(db_obj)
        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        *,
        db_obj: ModelType,
        obj_in: BaseModel | dict[str, Any],
    ) -> ModelType:
        """Apply a partial change to a loaded row.

        Only the keys present in ``obj_in`` are written; unset schema
        fields are left alone.
        """
        for field, value in _as_values(obj_in).items():
            setattr(db_obj, field, value)

        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    async def delete(self, db_obj: ModelType) -> None:
        """Delete a loaded row."""
        await self.db.delete(db_obj)
        await self.db.flush()

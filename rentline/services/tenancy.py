"""
Organization-scoped store access.

Every engine query goes through ``OrgScope`` so the tenant predicate is added
in one place. Rows belonging to another organization are reported exactly like
missing rows.
"""
import uuid
from typing import Any, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentline.core.errors import NotFoundError

T = TypeVar("T")


class OrgScope:
    def __init__(self, db: AsyncSession, organization_id: uuid.UUID):
        self.db = db
        self.organization_id = organization_id

    def select(self, model: type[T], *columns: Any) -> Select:
        """``SELECT model`` (or the given columns) restricted to this organization."""
        stmt = select(*columns) if columns else select(model)
        return stmt.where(model.organization_id == self.organization_id)

    async def find(self, model: type[T], row_id: uuid.UUID) -> T | None:
        result = await self.db.execute(self.select(model).where(model.id == row_id))
        return result.scalar_one_or_none()

    async def get(self, model: type[T], row_id: uuid.UUID, label: str) -> T:
        row = await self.find(model, row_id)
        if row is None:
            raise NotFoundError(label)
        return row

    async def get_for_update(self, model: type[T], row_id: uuid.UUID, label: str) -> T:
        """Same as ``get`` but locks the row until the transaction ends."""
        result = await self.db.execute(
            self.select(model).where(model.id == row_id).with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(label)
        return row

from collections.abc import AsyncIterator

from pydantic import BaseModel, TypeAdapter
from sqlalchemy import JSON
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from rentline.core.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request: commit on success, roll back on any error."""
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class PydanticJSONList(TypeDecorator):
    """Ordered list of pydantic value objects stored as a JSON array.

    The domain only ever sees ``list[item_type]``; dicts exist only on the
    way in and out of the database.
    """

    impl = JSON
    cache_ok = True

    def __init__(self, item_type: type[BaseModel], *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.item_type = item_type
        self._adapter = TypeAdapter(list[item_type])

    def process_bind_param(self, value, dialect):
        if value is None:
            return []
        items = self._adapter.validate_python(value)
        return [item.model_dump(mode="json") for item in items]

    def process_result_value(self, value, dialect):
        if value is None:
            return []
        return self._adapter.validate_python(value)

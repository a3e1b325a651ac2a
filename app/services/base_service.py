# app/services/base_service.py
"""Base service with common CRUD operations."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from typing import Type, Any, Optional, TypeVar, Generic

# Define generic type
T = TypeVar('T')


class BaseService(Generic[T]):
    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any) -> Optional[T]:
        stmt = select(self.model).where(self.model.id == id)
        if hasattr(self.model, 'is_deleted'):
            stmt = stmt.where(self.model.is_deleted == False)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def upsert_stmt(self, model: Optional[Type] = None):
        """INSERT that supports ``on_conflict_do_update`` on the bound dialect."""
        target = model or self.model
        if self.db.get_bind().dialect.name == "postgresql":
            return pg_insert(target)
        return sqlite_insert(target)

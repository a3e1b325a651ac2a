# app/services/chat/unread_service.py
"""Per (user, chat) unread counters.

Counters are only changed through single-statement upserts so concurrent
increments and resets are serialized by the database row lock.
"""
from datetime import datetime
from typing import List, Optional, Dict
import uuid
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..base_service import BaseService
from ...models.base import utcnow
from ...models.chat.unread_count import ChatUnreadCount

logger = logging.getLogger(__name__)


class UnreadCountService(BaseService[ChatUnreadCount]):
    def __init__(self, db: AsyncSession):
        super().__init__(ChatUnreadCount, db)

    def _new_row(self, user_id: str, chat_id: str, now: datetime, **values) -> Dict:
        row = {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "chat_id": chat_id,
            "unread_count": 0,
            "created_at": now,
            "updated_at": now,
            "is_deleted": False,
        }
        row.update(values)
        return row

    async def increment(self, user_id: str, chat_id: str) -> None:
        """Add one unread message for ``user_id`` in ``chat_id``."""
        now = utcnow()
        stmt = self.upsert_stmt().values(**self._new_row(user_id, chat_id, now, unread_count=1))
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "chat_id"],
            set_={
                "unread_count": ChatUnreadCount.unread_count + 1,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def reset(self, user_id: str, chat_id: str, read_at: Optional[datetime] = None) -> None:
        """Zero the counter and record when the chat was read."""
        now = read_at or utcnow()
        stmt = self.upsert_stmt().values(
            **self._new_row(user_id, chat_id, now, unread_count=0, last_read_at=now)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "chat_id"],
            set_={
                "unread_count": 0,
                "last_read_at": now,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def get_entry(self, user_id: str, chat_id: str) -> Optional[ChatUnreadCount]:
        stmt = (
            select(ChatUnreadCount)
            .where(ChatUnreadCount.user_id == user_id, ChatUnreadCount.chat_id == chat_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_count(self, user_id: str, chat_id: str) -> int:
        entry = await self.get_entry(user_id, chat_id)
        return entry.unread_count if entry else 0

    async def get_total(self, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(ChatUnreadCount.unread_count), 0)).where(
            ChatUnreadCount.user_id == user_id,
            ChatUnreadCount.unread_count > 0,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def get_all(self, user_id: str) -> List[ChatUnreadCount]:
        """All chats with at least one unread message."""
        stmt = (
            select(ChatUnreadCount)
            .where(ChatUnreadCount.user_id == user_id, ChatUnreadCount.unread_count > 0)
            .order_by(ChatUnreadCount.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

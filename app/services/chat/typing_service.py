# app/services/chat/typing_service.py
"""Ephemeral typing status kept in Redis.

Each (chat, user) pair is one key holding ``{chat_id, user_id, started_at,
expires_at}`` with a key TTL equal to the typing window. Readers filter on the
payload's ``expires_at`` so a key that Redis has not evicted yet is still
treated as gone once its window has passed.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
import logging
import re

from ...core.cache import CacheManager
from ...core.retry import RetryPolicy, call_with_retry
from ...models.base import utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "typing"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def typing_key(chat_id: str, user_id: str) -> str:
    return f"{KEY_PREFIX}:{chat_id}:{user_id}"


def _chat_pattern(chat_id: Optional[str] = None) -> str:
    if chat_id is None:
        return f"{KEY_PREFIX}:*"
    escaped = _GLOB_SPECIAL.sub(r"\\\1", chat_id)
    return f"{KEY_PREFIX}:{escaped}:*"


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


class TypingService:
    def __init__(
        self,
        cache: CacheManager,
        ttl_seconds: float = 2.0,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.cache = cache
        self.ttl = timedelta(seconds=ttl_seconds)
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock

    async def _run(self, operation, description: str):
        return await call_with_retry(operation, self.retry_policy, description=description)

    async def start_typing(self, chat_id: str, user_id: str) -> Dict:
        """Mark the user as typing; repeated calls push expiry to last call + TTL."""
        now = self.clock()
        row = {
            "chat_id": chat_id,
            "user_id": user_id,
            "started_at": now.isoformat(),
            "expires_at": (now + self.ttl).isoformat(),
        }
        key = typing_key(chat_id, user_id)
        await self._run(lambda: self.cache.set_json(key, row, expire=self.ttl), "start typing")
        logger.debug(f"User {user_id} typing in chat {chat_id}")
        return row

    async def stop_typing(self, chat_id: str, user_id: str) -> bool:
        key = typing_key(chat_id, user_id)
        removed = await self._run(lambda: self.cache.delete(key), "stop typing")
        return removed > 0

    async def _live_rows(self, pattern: str) -> List[Dict]:
        keys = await self._run(lambda: self.cache.scan_keys(pattern), "scan typing keys")
        if not keys:
            return []
        rows = await self._run(lambda: self.cache.get_many_json(sorted(keys)), "read typing keys")
        now = self.clock()
        return [row for row in rows if row and _parse(row["expires_at"]) > now]

    async def get_typing_users(self, chat_id: str) -> List[Dict]:
        rows = await self._live_rows(_chat_pattern(chat_id))
        # scan also matches chat ids that share a prefix containing ':'
        rows = [row for row in rows if row["chat_id"] == chat_id]
        return sorted(rows, key=lambda row: row["started_at"])

    async def is_user_typing(self, chat_id: str, user_id: str) -> bool:
        key = typing_key(chat_id, user_id)
        row = await self._run(lambda: self.cache.get_json(key), "read typing key")
        return bool(row) and _parse(row["expires_at"]) > self.clock()

    async def clear_chat_typing(self, chat_id: str) -> int:
        rows = await self.get_typing_users(chat_id)
        keys = [typing_key(chat_id, row["user_id"]) for row in rows]
        if not keys:
            return 0
        return await self._run(lambda: self.cache.delete(*keys), "clear chat typing")

    async def clear_user_typing(self, user_id: str) -> List[str]:
        """Drop every typing row of a user (on disconnect). Returns the chat ids."""
        rows = await self._live_rows(_chat_pattern())
        chat_ids = [row["chat_id"] for row in rows if row["user_id"] == user_id]
        if chat_ids:
            keys = [typing_key(chat_id, user_id) for chat_id in chat_ids]
            await self._run(lambda: self.cache.delete(*keys), "clear user typing")
        return chat_ids

    async def get_typing_stats(self) -> Dict:
        rows = await self._live_rows(_chat_pattern())
        chats: Dict[str, int] = {}
        for row in rows:
            chats[row["chat_id"]] = chats.get(row["chat_id"], 0) + 1
        return {
            "totalTypingUsers": len(rows),
            "activeChats": len(chats),
            "chats": chats,
        }

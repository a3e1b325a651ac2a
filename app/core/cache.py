# app/core/cache.py
"""Redis access for short-lived state (typing status)."""
import json
from typing import Any, List, Optional, Union
from datetime import timedelta
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError, RedisError

from .retry import ChatError, ErrorCategory


class CacheManager:
    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = client

    async def connect(self):
        """Initialize Redis connection."""
        if not self.redis:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )

    async def disconnect(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def _client(self) -> redis.Redis:
        if not self.redis:
            await self.connect()
        return self.redis

    @staticmethod
    def _wrap(exc: RedisError) -> ChatError:
        if isinstance(exc, (RedisConnectionError, RedisTimeoutError)):
            return ChatError(f"Redis unavailable: {exc}", ErrorCategory.NETWORK)
        return ChatError(f"Redis error: {exc}", ErrorCategory.GENERIC)

    async def ping(self) -> bool:
        client = await self._client()
        try:
            return bool(await client.ping())
        except RedisError as e:
            raise self._wrap(e) from e

    async def get_json(self, key: str) -> Optional[Any]:
        """Get a JSON value from cache."""
        client = await self._client()
        try:
            value = await client.get(key)
        except RedisError as e:
            raise self._wrap(e) from e
        return json.loads(value) if value else None

    async def get_many_json(self, keys: List[str]) -> List[Optional[Any]]:
        if not keys:
            return []
        client = await self._client()
        try:
            values = await client.mget(keys)
        except RedisError as e:
            raise self._wrap(e) from e
        return [json.loads(v) if v else None for v in values]

    async def set_json(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[float, timedelta]] = None
    ) -> bool:
        """Set a JSON value, optionally expiring after ``expire`` seconds."""
        client = await self._client()
        if isinstance(expire, timedelta):
            expire = expire.total_seconds()
        try:
            if expire:
                return bool(await client.set(key, json.dumps(value), px=max(1, int(expire * 1000))))
            return bool(await client.set(key, json.dumps(value)))
        except RedisError as e:
            raise self._wrap(e) from e

    async def delete(self, *keys: str) -> int:
        """Delete keys from cache, returns number removed."""
        if not keys:
            return 0
        client = await self._client()
        try:
            return int(await client.delete(*keys))
        except RedisError as e:
            raise self._wrap(e) from e

    async def scan_keys(self, pattern: str) -> List[str]:
        client = await self._client()
        try:
            return [key async for key in client.scan_iter(match=pattern)]
        except RedisError as e:
            raise self._wrap(e) from e

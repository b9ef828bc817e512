"""
Redis cache client with connection pooling and JSON serialization.

The cache is an optimisation only: every failure is logged and reported as a
miss so dashboards fall back to the database. All calls go through
``redis.asyncio`` with a socket timeout, so a stalled Redis never holds up the
event loop that serves template channels.
"""
import json
from typing import Optional, Any, Iterable
from redis import asyncio as aioredis
from inviteflow.core.config import settings
from inviteflow.core.logging import logger


class RedisCache:
    """Redis cache client with connection pooling."""

    def __init__(self, url: Optional[str] = None, socket_timeout: Optional[float] = None):
        self._url = url or settings.REDIS_URL
        self._socket_timeout = settings.REDIS_SOCKET_TIMEOUT if socket_timeout is None else socket_timeout
        self._pool: Optional[aioredis.ConnectionPool] = None
        self._client: Optional[aioredis.Redis] = None

    def _get_client(self) -> aioredis.Redis:
        """Get or create Redis client with connection pooling."""
        if self._client is None:
            self._pool = aioredis.ConnectionPool.from_url(
                self._url,
                decode_responses=True,
                max_connections=20,
                socket_connect_timeout=self._socket_timeout,
                socket_timeout=self._socket_timeout,
            )
            self._client = aioredis.Redis(connection_pool=self._pool)
            logger.info("Redis connection pool created")
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache by key.

        Returns:
            Cached value or None if not found
        """
        try:
            value = await self._get_client().get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, expire: int = 300) -> bool:
        """
        Set value in cache with expiration.

        Args:
            key: Cache key
            value: Value to cache (will be JSON serialized)
            expire: Expiration time in seconds (default: 300)
        """
        try:
            serialized = json.dumps(value, default=str)
            await self._get_client().setex(key, expire, serialized)
            return True
        except Exception as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._get_client().delete(key)
            return True
        except Exception as e:
            logger.error(f"Redis DELETE error for key {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching pattern.

        Args:
            pattern: Key pattern (e.g., 'wishes:<event_id>:*')

        Returns:
            Number of keys deleted
        """
        try:
            client = self._get_client()
            keys = [key async for key in client.scan_iter(match=pattern, count=500)]
            if keys:
                return await client.delete(*keys)
            return 0
        except Exception as e:
            logger.error(f"Redis DELETE_PATTERN error for pattern {pattern}: {e}")
            return 0

    async def invalidate(self, patterns: Iterable[str]) -> int:
        """Delete every key matching any of ``patterns``; returns the number removed."""
        removed = 0
        for pattern in patterns:
            removed += await self.delete_pattern(pattern)
        return removed

    async def close(self):
        """Close Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()
            await self._pool.disconnect()
            self._client = None
            self._pool = None
            logger.info("Redis connection pool closed")


# Create a single instance to be imported throughout the app
cache = RedisCache()

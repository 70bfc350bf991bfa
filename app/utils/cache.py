"""
Cache Utility Module

Provides the optional Redis tier for shared, cross-process caching.
Every Redis failure degrades to a cache miss; the cache is never a source
of truth.
"""

import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from app.config import settings
from app.utils.metrics import REDIS_CONNECTED, record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

RECONNECT_COOLDOWN_SECONDS = 30


class CacheManager:
    """
    Manages Redis-based caching for the application.

    Provides:
    - Key-value caching with TTL
    - Key and pattern deletion
    - Self-healing reconnects after a cooldown
    """

    TTL_SHORT = 60  # 1 minute
    TTL_MEDIUM = 300  # 5 minutes

    def __init__(self, url: str | None = None):
        self._url = url
        self._redis: redis.Redis | None = None
        self._pool: redis.ConnectionPool | None = None
        self._enabled = bool(url)
        self._last_connect_attempt: float = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def connect(self) -> None:
        """Establish connection to Redis"""
        if self._redis is not None or not self._url:
            return

        self._last_connect_attempt = time.time()
        try:
            self._pool = redis.ConnectionPool.from_url(self._url, decode_responses=True)
            self._redis = redis.Redis(connection_pool=self._pool)
            await self._redis.ping()
            REDIS_CONNECTED.labels(role="cache").set(1)
            logger.info("Cache: Successfully connected to Redis")
        except Exception as e:
            REDIS_CONNECTED.labels(role="cache").set(0)
            logger.warning(f"Cache: Failed to connect to Redis: {e}. Redis tier disabled.")
            self._redis = None
            self._pool = None
            self._enabled = False

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Cache: Disconnected from Redis")

    async def _maybe_retry_connect(self) -> None:
        """Re-attempt connection after a cooldown to allow self-healing."""
        if self._url and not self._enabled and time.time() - self._last_connect_attempt >= RECONNECT_COOLDOWN_SECONDS:
            logger.info("Cache: retrying Redis connection after cooldown...")
            self._enabled = True
            await self.connect()

    async def get(self, key: str) -> Any | None:
        """
        Get a cached value by key.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return None

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return None

            data = await self._redis.get(key)
            if data:
                record_cache_hit("redis")
                return json.loads(data)

            record_cache_miss("redis")
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Set a cached value with TTL, replacing any previous value wholesale.

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live in seconds (default: TTL_MEDIUM)

        Returns:
            True if successful, False otherwise
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return False

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return False

            await self._redis.setex(key, ttl or self.TTL_MEDIUM, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def ttl(self, key: str) -> float | None:
        """Seconds left before a key expires; None if it is missing, has no expiry, or Redis failed."""
        if not self._enabled or not self._redis:
            return None

        try:
            remaining_ms = await self._redis.pttl(key)
        except Exception as e:
            logger.warning(f"Cache ttl error for {key}: {e}")
            return None
        return remaining_ms / 1000 if remaining_ms > 0 else None

    async def delete(self, *keys: str) -> int:
        """Delete cached values; returns the number removed."""
        if not self._enabled or not self._redis or not keys:
            return 0

        try:
            return await self._redis.delete(*keys)
        except Exception as e:
            logger.warning(f"Cache delete error for {keys}: {e}")
            return 0

    async def keys(self, pattern: str) -> list[str]:
        """Keys matching a pattern (e.g. ``discover:*``)."""
        if not self._enabled or not self._redis:
            return []

        try:
            return [key async for key in self._redis.scan_iter(match=pattern)]
        except Exception as e:
            logger.warning(f"Cache scan error for {pattern}: {e}")
            return []


# Global cache manager instance
cache_manager = CacheManager(settings.redis_url)

"""
Discovery Service

Random content discovery behind a short-lived cache.

Tier 1: in-process TTL store (always on)
Tier 2: Redis via the shared cache manager (when ``redis_url`` is set)

A selection is replaced wholesale on write and is never patched after
edits; only deleting content evicts the selections that reference it.
Concurrent misses may each recompute, and the last write wins.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import CategoryNotFoundError, NoContentFoundError
from app.models.category import Category
from app.models.content import Content, ContentStatus
from app.utils.cache import CacheManager, cache_manager
from app.utils.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

KEY_PREFIX = "discover:"


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total * 100


class TTLCache:
    """
    In-memory LRU store whose entries expire a fixed number of seconds after
    they were written.

    ``clock`` returns seconds and is injectable so expiry can be driven
    deterministically.
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        self._cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._max_size = max_size
        self._clock = clock
        self._stats = CacheStats()

    def get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            self._stats.misses += 1
            return None

        self._cache.move_to_end(key)
        self._stats.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (value, self._clock() + ttl)

        # Evict least recently used if over capacity
        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)
            self._stats.evictions += 1

        self._stats.sets += 1

    def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    def items(self) -> list[tuple[str, Any]]:
        """Live (unexpired) entries."""
        now = self._clock()
        return [(key, value) for key, (value, expires_at) in self._cache.items() if now < expires_at]

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._cache.items() if now >= expires_at]
        for key in expired:
            del self._cache[key]
        return len(expired)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> dict:
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "hit_rate": f"{self._stats.hit_rate:.2f}%",
        }


def discovery_key(category_id: int | None, status: ContentStatus | str) -> str:
    status = ContentStatus(status)
    scope = "all" if category_id is None else str(category_id)
    return f"{KEY_PREFIX}{scope}:{status.value}"


def _references(selection: dict, content_id: int) -> bool:
    return any(item.get("id") == content_id for item in selection.get("items", []))


class DiscoveryService:
    """Cached random-content selection, per category or across all categories."""

    def __init__(
        self,
        redis_cache: CacheManager | None = None,
        ttl_seconds: int | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._redis = redis_cache if redis_cache is not None else cache_manager
        self.ttl_seconds = ttl_seconds or settings.discovery_cache_ttl_seconds
        self._memory = TTLCache(max_size=max_entries or settings.discovery_cache_max_entries, clock=clock)

    async def get_random(
        self,
        db: AsyncSession,
        category_id: int | None = None,
        status: ContentStatus | str = ContentStatus.PUBLISHED,
    ) -> dict[str, Any]:
        """
        Return a random selection and whether it came from the cache.

        Result shape: ``{"category": summary | None, "items": [...], "cached": bool}``.
        Raises CategoryNotFoundError for an unknown category and
        NoContentFoundError when nothing matches; empty selections are not
        cached.
        """
        status = ContentStatus(status)
        key = discovery_key(category_id, status)

        selection = await self._get_cached(key)
        if selection is not None:
            return {**selection, "cached": True}

        if category_id is not None:
            selection = await self._select_in_category(db, category_id, status)
        else:
            selection = await self._select_per_category(db, status)

        self._memory.set(key, selection, self.ttl_seconds)
        await self._redis.set(key, selection, self.ttl_seconds)
        logger.debug(f"Discovery selection cached: {key} ({len(selection['items'])} item(s))")

        return {**selection, "cached": False}

    async def _get_cached(self, key: str) -> dict | None:
        selection = self._memory.get(key)
        if selection is not None:
            record_cache_hit("memory")
            return selection
        record_cache_miss("memory")

        if self._redis.enabled:
            selection = await self._redis.get(key)
            if selection is not None:
                # Refill memory only for what is left of the Redis entry's lifetime
                remaining = await self._redis.ttl(key)
                if remaining:
                    self._memory.set(key, selection, min(remaining, self.ttl_seconds))
                return selection
        return None

    async def _select_in_category(self, db: AsyncSession, category_id: int, status: ContentStatus) -> dict:
        category = await db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)

        result = await db.execute(
            select(Content)
            .where(Content.category_id == category_id, Content.status == status)
            .order_by(func.random())
            .limit(1)
        )
        content = result.scalars().first()
        if content is None:
            raise NoContentFoundError(f"No {status.value} content found in this category", category_id=category_id)

        return {
            "category": category.to_summary(),
            "items": [{**content.to_dict(), "category": category.to_summary()}],
        }

    async def _select_per_category(self, db: AsyncSession, status: ContentStatus) -> dict:
        result = await db.execute(
            select(Category)
            .where(Category.id.in_(select(Content.category_id).where(Content.status == status)))
            .order_by(Category.name)
        )
        categories = result.scalars().all()

        items = []
        for category in categories:
            picked = await db.execute(
                select(Content)
                .where(Content.category_id == category.id, Content.status == status)
                .order_by(func.random())
                .limit(1)
            )
            content = picked.scalars().first()
            # Content may have moved or changed status since the category scan
            if content is not None:
                items.append({**content.to_dict(), "category": category.to_summary()})

        if not items:
            raise NoContentFoundError(f"No {status.value} content found")

        return {"category": None, "items": items}

    async def evict_content(self, content_id: int) -> int:
        """Drop every cached selection that contains ``content_id``. Returns the number evicted."""
        evicted = 0
        for key, selection in self._memory.items():
            if _references(selection, content_id):
                self._memory.delete(key)
                evicted += 1

        stale = []
        for key in await self._redis.keys(f"{KEY_PREFIX}*"):
            selection = await self._redis.get(key)
            if selection is not None and _references(selection, content_id):
                stale.append(key)
        if stale:
            evicted += await self._redis.delete(*stale)

        if evicted:
            logger.info(f"Discovery cache: evicted {evicted} selection(s) referencing content {content_id}")
        return evicted

    def purge_expired(self) -> int:
        """Remove expired in-process entries; Redis expires its own."""
        purged = self._memory.purge_expired()
        if purged:
            logger.debug(f"Discovery cache: purged {purged} expired selection(s)")
        return purged

    def clear(self) -> None:
        self._memory.clear()

    def get_stats(self) -> dict:
        return {"ttl_seconds": self.ttl_seconds, "memory": self._memory.get_stats(), "redis": self._redis.enabled}


# Global discovery service instance
discovery_service = DiscoveryService()

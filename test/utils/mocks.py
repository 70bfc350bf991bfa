"""
Test doubles for the discovery cache tiers
"""

from fnmatch import fnmatch


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockCacheManager:
    """
    In-memory stand-in for the Redis cache manager.

    Honors the same interface (enabled/get/set/ttl/delete/keys) without a
    clock: ``ttl`` reports the TTL a key was written with unless ``remaining``
    overrides it. Set ``fail`` to make every call behave like an unreachable
    Redis.
    """

    def __init__(self):
        self.store: dict = {}
        self.ttls: dict = {}
        self.remaining: dict = {}
        self.fail = False

    @property
    def enabled(self) -> bool:
        return not self.fail

    async def get(self, key):
        if self.fail:
            return None
        return self.store.get(key)

    async def set(self, key, value, ttl=None):
        if self.fail:
            return False
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def ttl(self, key):
        if self.fail or key not in self.store:
            return None
        return self.remaining.get(key, self.ttls.get(key))

    async def delete(self, *keys):
        if self.fail:
            return 0
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def keys(self, pattern):
        if self.fail:
            return []
        return [key for key in self.store if fnmatch(key, pattern)]

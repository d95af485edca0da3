from typing import Dict, Any, Optional, Callable, Awaitable
from collections import OrderedDict
import asyncio
import time


class CacheMemoryStore:
    """In-memory read-through cache with TTL and LRU eviction"""

    def __init__(self, ttl: float = 300.0, max_entries: int = 64, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self.cache: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, evicting the least recently used entry when full"""

        async with self._lock:
            self.cache[key] = {
                "value": value,
                "expires_at": self._clock() + (self.ttl if ttl is None else ttl)
            }
            self.cache.move_to_end(key)

            # Evict least recently used entries
            while len(self.cache) > self.max_entries:
                self.cache.popitem(last=False)

    async def get(self, key: str) -> Optional[Any]:
        """Fresh value for the key, None when missing or expired"""

        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                return None

            if self._clock() > entry["expires_at"]:
                del self.cache[key]
                return None

            self.cache.move_to_end(key)
            return entry["value"]

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or populate it from the loader

        The loader runs outside the lock, so two callers may populate the same
        key; the last write wins. Loaders must be idempotent.
        """

        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        await self.set(key, value)
        return value

    async def delete(self, key: str) -> bool:
        """Drop a key, e.g. after the project manifest changed"""

        async with self._lock:
            if key in self.cache:
                del self.cache[key]
                return True
            return False

    async def clear_expired(self) -> int:
        """Purge expired entries, returning how many were removed"""

        async with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self.cache.items()
                if now > entry["expires_at"]
            ]

            for key in expired_keys:
                del self.cache[key]

            return len(expired_keys)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            now = self._clock()
            fresh = sum(1 for entry in self.cache.values() if now <= entry["expires_at"])

            return {
                "total_keys": len(self.cache),
                "active_keys": fresh,
                "expired_keys": len(self.cache) - fresh,
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl
            }

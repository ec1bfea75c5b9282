"""In-memory storage adapter (async only).

Process-local: in a multi-instance deployment each instance holds its own
copy, so invalidations are not shared. Use the Redis adapter for that.
"""

from collections import OrderedDict
from fnmatch import fnmatchcase

from storycache.types import Backend, CacheEntry, Clock, now_ms


class AsyncMemoryAdapter:
    """Async in-memory storage adapter with optional LRU eviction."""

    backend: Backend = "memory"

    def __init__(
        self,
        max_items: int | None = None,
        *,
        sweep_every: int = 100,
        clock: Clock = now_ms,
    ) -> None:
        self._cache: OrderedDict[str, CacheEntry[object]] = OrderedDict()
        self._max_items = max_items
        self._sweep_every = sweep_every
        self._writes = 0
        self._clock = clock

    def _expired(self, entry: CacheEntry[object]) -> bool:
        return self._clock() >= entry.physical_expiry

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key, dropping it if physically expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._cache[key]
            return None
        self._cache.move_to_end(key)  # LRU touch
        return entry

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry."""
        self._cache[key] = entry
        self._cache.move_to_end(key)
        self._writes += 1
        if self._sweep_every and self._writes % self._sweep_every == 0:
            self.sweep()
        if self._max_items and len(self._cache) > self._max_items:
            self.sweep()
            while len(self._cache) > self._max_items:
                self._cache.popitem(last=False)

    async def delete(self, key: str) -> bool:
        """Delete a cache entry."""
        return self._cache.pop(key, None) is not None

    async def scan(self, pattern: str) -> list[str]:
        """Linear scan of live keys matching a glob pattern."""
        return [
            key
            for key, entry in list(self._cache.items())
            if fnmatchcase(key, pattern) and not self._expired(entry)
        ]

    async def count(self) -> int:
        """Number of live entries; expired ones are swept first."""
        self.sweep()
        return len(self._cache)

    async def ping(self) -> None:
        """Always reachable."""

    def sweep(self) -> int:
        """Drop every physically expired entry. Returns the number removed."""
        expired = [key for key, entry in self._cache.items() if self._expired(entry)]
        for key in expired:
            del self._cache[key]
        return len(expired)

    async def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass

"""Storage adapters for the storycache library (async only)."""

from contextlib import suppress

from storycache.adapters.base import AsyncStorageAdapter
from storycache.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from storycache.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
]

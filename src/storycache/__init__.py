"""storycache - caching, invalidation and request deduplication."""

from contextlib import suppress

# Adapters (async only)
from storycache.adapters import AsyncMemoryAdapter, AsyncStorageAdapter

# Client side
from storycache.client_cache import ClientCacheEntry, ClientStatsCache, StatsQuery
from storycache.config import CacheSettings, get_settings
from storycache.dedup import RequestDeduplicator, request_key

# Duration parsing
from storycache.duration import Duration, parse_duration
from storycache.exceptions import (
    CacheBackendError,
    CacheError,
    CorruptedEntryError,
    QuotaExceededError,
    StorageError,
    StorageUnavailableError,
)
from storycache.invalidation import InvalidationSignal, RemoteInvalidationPoller
from storycache.keys import Family, make_key

# Server side
from storycache.manager import CacheManager, TtlPolicy
from storycache.singleflight import SingleFlight
from storycache.store import KeyValueStore

# Core types
from storycache.types import (
    Available,
    BackendError,
    CachedValue,
    CacheEntry,
    CacheStats,
    HealthReport,
    Miss,
    Ok,
    Unavailable,
)
from storycache.web_storage import FileWebStorage, MemoryWebStorage, WebStorage

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from storycache.adapters import AsyncRedisAdapter

__version__ = "0.1.0"

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "Available",
    "BackendError",
    "CacheBackendError",
    "CacheEntry",
    "CacheError",
    "CacheManager",
    "CacheSettings",
    "CacheStats",
    "CachedValue",
    "ClientCacheEntry",
    "ClientStatsCache",
    "CorruptedEntryError",
    "Duration",
    "Family",
    "FileWebStorage",
    "HealthReport",
    "InvalidationSignal",
    "KeyValueStore",
    "MemoryWebStorage",
    "Miss",
    "Ok",
    "QuotaExceededError",
    "RemoteInvalidationPoller",
    "RequestDeduplicator",
    "SingleFlight",
    "StatsQuery",
    "StorageError",
    "StorageUnavailableError",
    "TtlPolicy",
    "Unavailable",
    "WebStorage",
    "get_settings",
    "make_key",
    "parse_duration",
    "request_key",
]

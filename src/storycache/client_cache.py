"""Client-side cache for landing page statistics.

Entries live in a :class:`~storycache.web_storage.WebStorage` under the
``landing_stats_`` prefix as JSON ``{"data", "expiry", "cacheKey"}`` where
``expiry`` is an absolute epoch-ms timestamp. Nothing in this module raises
to the caller: an unavailable, full or corrupted storage always degrades to
a cache miss or a skipped write.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from itertools import product
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storycache.config import CacheSettings
from storycache.exceptions import CorruptedEntryError, QuotaExceededError
from storycache.logger import get_logger
from storycache.types import Availability, Available, Clock, Unavailable, now_ms
from storycache.web_storage import WebStorage

logger = get_logger(__name__)

CACHE_DURATION_MS = 5 * 60_000
CACHE_PREFIX = "landing_stats_"

_PROBE_KEY = "__cache_test__"

# Removed by clear_all_cache() when the storage cannot be enumerated
_COMMON_PAGES = range(1, 6)
_COMMON_LIMITS = (8, 12, 20)


@dataclass(frozen=True, slots=True)
class StatsQuery:
    """Parameters identifying one page of landing statistics."""

    page: int = 1
    limit: int = 8
    include_real_comment_counts: bool = True

    def cache_key(self, prefix: str = CACHE_PREFIX) -> str:
        comments = "true" if self.include_real_comment_counts else "false"
        return f"{prefix}page_{self.page}_limit_{self.limit}_comments_{comments}"


class ClientCacheEntry(BaseModel):
    """Persisted entry shape; validation failures mean a corrupted entry."""

    model_config = ConfigDict(populate_by_name=True)

    data: Any
    expiry: int
    cache_key: str = Field(alias="cacheKey")


class ClientStatsCache:
    """Persisted statistics cache with absolute-expiry entries."""

    def __init__(
        self,
        storage: WebStorage | None,
        *,
        duration_ms: int = CACHE_DURATION_MS,
        prefix: str = CACHE_PREFIX,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._duration_ms = duration_ms
        self._prefix = prefix
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        storage: WebStorage | None,
        settings: CacheSettings,
        *,
        clock: Clock = now_ms,
    ) -> ClientStatsCache:
        return cls(storage, duration_ms=settings.ms("CLIENT_CACHE_DURATION"), clock=clock)

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    @property
    def prefix(self) -> str:
        return self._prefix

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def probe(self) -> Availability:
        """Check that the storage accepts writes right now.

        Not memoized: storage access can be revoked mid-session.
        """
        if self._storage is None:
            return Unavailable("no storage configured")
        try:
            self._storage.set_item(_PROBE_KEY, "test")
            self._storage.remove_item(_PROBE_KEY)
        except QuotaExceededError:
            # full but usable; writes go through quota recovery
            return Available()
        except Exception as exc:
            return Unavailable(f"{type(exc).__name__}: {exc}")
        return Available()

    def _usable(self, operation: str) -> WebStorage | None:
        availability = self.probe()
        if isinstance(availability, Unavailable):
            logger.debug("client_cache_unavailable", operation=operation, reason=availability.reason)
            return None
        return self._storage

    # -------------------------------------------------------------------------
    # Entry helpers
    # -------------------------------------------------------------------------

    def _serialize(self, key: str, data: Any) -> str:
        entry = ClientCacheEntry(data=data, expiry=self._clock() + self._duration_ms, cache_key=key)
        return entry.model_dump_json(by_alias=True)

    @staticmethod
    def _parse(raw: str) -> ClientCacheEntry:
        try:
            return ClientCacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            raise CorruptedEntryError(
                "Cached entry has an unexpected shape", details={"errors": exc.error_count()}
            ) from exc

    def _evict(self, storage: WebStorage, key: str) -> bool:
        try:
            storage.remove_item(key)
        except Exception as exc:
            logger.warning("client_cache_evict_failed", key=key, error=str(exc))
            return False
        return True

    def _prefixed_keys(self, storage: WebStorage) -> list[str]:
        """Enumerate keys under our prefix, skipping unreadable indices."""
        found: list[str] = []
        for index in range(storage.length):
            try:
                key = storage.key(index)
            except Exception:
                continue
            if key is not None and key.startswith(self._prefix):
                found.append(key)
        return found

    def _fallback_keys(self) -> Iterator[str]:
        for page, limit, comments in product(_COMMON_PAGES, _COMMON_LIMITS, (True, False)):
            yield StatsQuery(page, limit, comments).cache_key(self._prefix)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get_cached_data(self, query: StatsQuery) -> Any | None:
        """Return unexpired cached data, evicting expired or corrupted entries."""
        try:
            storage = self._usable("get")
            if storage is None:
                return None
            key = query.cache_key(self._prefix)
            raw = storage.get_item(key)
            if raw is None:
                logger.debug("client_cache_miss", key=key)
                return None
            try:
                entry = self._parse(raw)
            except CorruptedEntryError:
                logger.warning("client_cache_corrupted_entry", key=key)
                self._evict(storage, key)
                return None
            now = self._clock()
            if now > entry.expiry:
                logger.debug("client_cache_expired", key=key, expired_ms_ago=now - entry.expiry)
                self._evict(storage, key)
                return None
            logger.debug("client_cache_hit", key=key, remaining_ms=entry.expiry - now)
            return entry.data
        except Exception as exc:
            logger.warning("client_cache_read_failed", error=f"{type(exc).__name__}: {exc}")
            return None

    def set_cached_data(self, query: StatsQuery, data: Any) -> bool:
        """Persist data for ``duration_ms``. Returns False if the write was skipped."""
        try:
            storage = self._usable("set")
            if storage is None:
                return False
            key = query.cache_key(self._prefix)
            try:
                storage.set_item(key, self._serialize(key, data))
            except QuotaExceededError:
                logger.info("client_cache_quota_exceeded", key=key)
                self.cleanup_expired_entries()
                try:
                    storage.set_item(key, self._serialize(key, data))
                except Exception as exc:
                    logger.error("client_cache_write_failed_after_cleanup", key=key, error=str(exc))
                    return False
                logger.debug("client_cache_set_after_cleanup", key=key)
                return True
            logger.debug("client_cache_set", key=key, expires_in_ms=self._duration_ms)
            self.cleanup_expired_entries()
            return True
        except Exception as exc:
            logger.warning("client_cache_write_failed", error=f"{type(exc).__name__}: {exc}")
            return False

    def remove_cached_data(self, query: StatsQuery) -> None:
        try:
            storage = self._usable("remove")
            if storage is not None:
                self._evict(storage, query.cache_key(self._prefix))
        except Exception as exc:
            logger.warning("client_cache_remove_failed", error=str(exc))

    def clear_all_cache(self) -> int:
        """Remove every entry under the prefix. Returns how many were removed."""
        try:
            storage = self._usable("clear")
            if storage is None:
                return 0
            try:
                keys = self._prefixed_keys(storage)
            except Exception as exc:
                logger.warning("client_cache_enumeration_failed", error=str(exc))
                keys = []
                for key in self._fallback_keys():
                    try:
                        if storage.get_item(key) is not None:
                            keys.append(key)
                    except Exception:
                        continue
            removed = sum(1 for key in keys if self._evict(storage, key))
            logger.info("client_cache_cleared", removed=removed)
            return removed
        except Exception as exc:
            logger.warning("client_cache_clear_failed", error=str(exc))
            return 0

    def cleanup_expired_entries(self) -> int:
        """Evict entries past expiry or unparsable. Returns how many were removed."""
        if self._storage is None:
            return 0
        storage = self._storage
        try:
            now = self._clock()
            removed = 0
            for key in self._prefixed_keys(storage):
                try:
                    raw = storage.get_item(key)
                    if raw is None:
                        continue
                    expired = now > self._parse(raw).expiry
                except Exception:
                    expired = True
                if expired and self._evict(storage, key):
                    removed += 1
            if removed:
                logger.info("client_cache_cleanup", removed=removed)
            return removed
        except Exception as exc:
            logger.warning("client_cache_cleanup_failed", error=str(exc))
            return 0

    def is_cache_fresh(self, query: StatsQuery) -> bool:
        """True only while more than half of the TTL window remains."""
        if self._storage is None:
            return False
        try:
            raw = self._storage.get_item(query.cache_key(self._prefix))
            if raw is None:
                return False
            entry = self._parse(raw)
            return self._clock() < entry.expiry - self._duration_ms / 2
        except Exception:
            return False

    def get_cache_stats(self) -> dict[str, int]:
        """Counts and total size of entries under the prefix."""
        stats = {"total_entries": 0, "expired_entries": 0, "valid_entries": 0, "total_size": 0}
        if self._storage is None:
            return stats
        storage = self._storage
        try:
            keys = self._prefixed_keys(storage)
            now = self._clock()
            stats["total_entries"] = len(keys)
            for key in keys:
                try:
                    raw = storage.get_item(key)
                    if raw is None:
                        continue
                    stats["total_size"] += len(raw)
                    if now > self._parse(raw).expiry:
                        stats["expired_entries"] += 1
                    else:
                        stats["valid_entries"] += 1
                except Exception:
                    stats["expired_entries"] += 1
        except Exception as exc:
            logger.warning("client_cache_stats_failed", error=str(exc))
        return stats

    async def get_or_fetch(
        self,
        query: StatsQuery,
        fetch: Callable[[StatsQuery], Awaitable[Any]],
    ) -> Any:
        """Serve from the cache, or call ``fetch`` and cache its result."""
        cached = self.get_cached_data(query)
        if cached is not None:
            return cached
        data = await fetch(query)
        self.set_cached_data(query, data)
        return data

"""Server-side cache manager.

The single point of truth for cache keys, TTL policy and invalidation:

- get(), set(), invalidate(), invalidate_pattern(), clear(): raw operations
- invalidate_stats(), invalidate_users(), invalidate_stories(),
  invalidate_engagement(): family invalidation triggered by mutations
- get_or_compute(): read-through with stampede protection and optional
  stale-on-error fallback
- get_stats(), health_check(): observability

A store failure is never raised to the caller: reads degrade to misses and
writes are dropped, so the worst effect of a cache outage is recomputation.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar, cast

from storycache import keys
from storycache.config import CacheSettings
from storycache.keys import Family
from storycache.logger import get_logger
from storycache.singleflight import SingleFlight
from storycache.store import KeyValueStore
from storycache.types import (
    BackendError,
    CachedValue,
    CacheEntry,
    CacheStats,
    Clock,
    Ok,
    now_ms,
)

T = TypeVar("T")

logger = get_logger(__name__)

_HEALTH_KEY = "health:check"

STATS_FAMILIES = (Family.STATS, Family.DASHBOARD, Family.LANDING)


@dataclass(frozen=True, slots=True)
class TtlPolicy:
    """Time-to-live per resource family, in milliseconds."""

    stats_ms: int = 5 * 60_000
    users_ms: int = 10 * 60_000
    stories_ms: int = 15 * 60_000
    default_ms: int = 10 * 60_000

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> TtlPolicy:
        return cls(
            stats_ms=settings.ms("STATS_TTL"),
            users_ms=settings.ms("USERS_TTL"),
            stories_ms=settings.ms("STORIES_TTL"),
            default_ms=settings.ms("DEFAULT_TTL"),
        )

    def for_key(self, key: str) -> int:
        family = keys.family_of(key)
        if family in {f.value for f in STATS_FAMILIES}:
            return self.stats_ms
        if family == Family.USERS.value:
            return self.users_ms
        if family == Family.STORIES.value:
            return self.stories_ms
        return self.default_ms


class CacheManager:
    """Orchestrates the server cache over an injected key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_policy: TtlPolicy | None = None,
        serve_stale: bool = False,
        stale_window_ms: int = 0,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._ttl = ttl_policy or TtlPolicy()
        self._serve_stale = serve_stale
        self._stale_window_ms = stale_window_ms
        self._clock = clock
        self._flight = SingleFlight()
        self._stats = CacheStats(backend=store.backend)
        self._stale_served = 0

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        settings: CacheSettings,
        *,
        clock: Clock = now_ms,
    ) -> CacheManager:
        return cls(
            store,
            ttl_policy=TtlPolicy.from_settings(settings),
            serve_stale=settings.SERVE_STALE_ON_ERROR,
            stale_window_ms=settings.ms("STALE_WINDOW"),
            clock=clock,
        )

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def ttl_policy(self) -> TtlPolicy:
        return self._ttl

    # -------------------------------------------------------------------------
    # Key builders
    # -------------------------------------------------------------------------

    make_key = staticmethod(keys.make_key)
    dashboard_stats_key = staticmethod(keys.dashboard_stats_key)
    landing_stats_key = staticmethod(keys.landing_stats_key)
    user_stats_key = staticmethod(keys.user_stats_key)
    story_stats_key = staticmethod(keys.story_stats_key)
    user_list_key = staticmethod(keys.user_list_key)
    story_list_key = staticmethod(keys.story_list_key)

    # -------------------------------------------------------------------------
    # Raw operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> CachedValue[Any] | None:
        """Return the fresh cached value with its age, or None."""
        result = await self._store.get(key)
        if isinstance(result, Ok):
            entry = result.value
            now = self._clock()
            if entry.is_fresh(now):
                self._stats.hit_count += 1
                logger.debug("cache_hit", key=key, age_ms=entry.age_ms(now))
                return CachedValue(value=entry.value, age_ms=entry.age_ms(now))
            logger.debug("cache_expired", key=key, age_ms=entry.age_ms(now))
        self._stats.miss_count += 1
        logger.debug("cache_miss", key=key, backend_error=isinstance(result, BackendError))
        return None

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> bool:
        """Store a value. Returns False if the store dropped the write."""
        ttl = ttl_ms if ttl_ms is not None else self._ttl.for_key(key)
        now = self._clock()
        entry: CacheEntry[object] = CacheEntry(
            key=key,
            value=value,
            stored_at=now,
            ttl_ms=ttl,
            stale_until=now + ttl + self._stale_window_ms if self._stale_window_ms else None,
        )
        stored = await self._store.set(key, entry)
        if stored:
            logger.debug("cache_set", key=key, ttl_ms=ttl)
        return stored

    async def invalidate(self, key: str) -> None:
        """Remove one entry."""
        await self._store.delete(key)
        self._stats.invalidation_count += 1
        logger.info("cache_invalidated", key=key)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Remove every entry whose key matches a glob pattern."""
        removed = 0
        for key in await self._store.scan(pattern):
            if await self._store.delete(key):
                removed += 1
        self._stats.invalidation_count += removed
        logger.info("cache_pattern_invalidated", pattern=pattern, removed=removed)
        return removed

    async def clear(self) -> None:
        """Drop every entry."""
        await self._store.clear()
        logger.info("cache_cleared", backend=self._store.backend)

    # -------------------------------------------------------------------------
    # Family invalidation
    # -------------------------------------------------------------------------

    async def invalidate_stats(self) -> int:
        """Invalidate dashboard, landing and other statistics variants."""
        removed = 0
        for family in STATS_FAMILIES:
            removed += await self.invalidate_pattern(keys.family_pattern(family))
        return removed

    async def invalidate_users(self) -> int:
        """Invalidate every user variant; user changes also affect stats."""
        removed = await self.invalidate_pattern(keys.family_pattern(Family.USERS))
        return removed + await self.invalidate_stats()

    async def invalidate_stories(self) -> int:
        """Invalidate every story variant; story changes also affect stats."""
        removed = await self.invalidate_pattern(keys.family_pattern(Family.STORIES))
        return removed + await self.invalidate_stats()

    async def invalidate_engagement(self) -> int:
        """Invalidate likes/comments/ratings variants and the stats they feed."""
        removed = await self.invalidate_pattern(keys.family_pattern(Family.ENGAGEMENT))
        return removed + await self.invalidate_stats()

    # -------------------------------------------------------------------------
    # Read-through
    # -------------------------------------------------------------------------

    async def get_or_compute(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl_ms: int | None = None,
        *,
        serve_stale: bool | None = None,
    ) -> CachedValue[T]:
        """Return the cached value, computing and storing it on a miss.

        Concurrent misses for the same key share a single producer call.
        When ``serve_stale`` is enabled and the producer raises, an expired
        entry still retained by the store is returned with ``stale=True``;
        otherwise the producer's exception propagates.
        """
        cached = await self.get(key)
        if cached is not None:
            return cast(CachedValue[T], cached)

        allow_stale = self._serve_stale if serve_stale is None else serve_stale

        async def compute() -> CachedValue[T]:
            # a flight that finished while our read was in progress has already stored it
            recent = await self._read_fresh(key)
            if recent is not None:
                return cast(CachedValue[T], recent)
            try:
                value = await producer()
            except Exception as exc:
                if allow_stale:
                    fallback = await self._stale_fallback(key, exc)
                    if fallback is not None:
                        return cast(CachedValue[T], fallback)
                raise
            await self.set(key, value, ttl_ms)
            return CachedValue(value=value, age_ms=0)

        return await self._flight.do(key, compute)

    async def _read_fresh(self, key: str) -> CachedValue[Any] | None:
        """Fresh entry without touching hit/miss counters."""
        result = await self._store.get(key)
        if not isinstance(result, Ok):
            return None
        now = self._clock()
        if not result.value.is_fresh(now):
            return None
        return CachedValue(value=result.value.value, age_ms=result.value.age_ms(now))

    async def _stale_fallback(self, key: str, exc: Exception) -> CachedValue[Any] | None:
        result = await self._store.get(key)
        if not isinstance(result, Ok):
            logger.warning("producer_failed_no_fallback", key=key, error=str(exc))
            return None
        entry = result.value
        now = self._clock()
        stale = not entry.is_fresh(now)
        if stale:
            self._stale_served += 1
        logger.warning(
            "serving_stale",
            key=key,
            age_ms=entry.age_ms(now),
            stale=stale,
            error=f"{type(exc).__name__}: {exc}",
        )
        return CachedValue(value=entry.value, age_ms=entry.age_ms(now), stale=stale)

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    async def get_stats(self) -> CacheStats:
        """Snapshot of hit/miss/invalidation/error counters."""
        return CacheStats(
            hit_count=self._stats.hit_count,
            miss_count=self._stats.miss_count,
            invalidation_count=self._stats.invalidation_count,
            error_count=self._store.error_count,
            backend=self._store.backend,
            entry_count=await self._store.count(),
            extra={
                "staleServed": self._stale_served,
                "inFlight": len(self._flight),
                "config": {
                    "statsTtlMs": self._ttl.stats_ms,
                    "usersTtlMs": self._ttl.users_ms,
                    "storiesTtlMs": self._ttl.stories_ms,
                    "defaultTtlMs": self._ttl.default_ms,
                    "serveStale": self._serve_stale,
                    "staleWindowMs": self._stale_window_ms,
                },
            },
        )

    async def health_check(self) -> dict[str, Any]:
        """Round-trip a probe entry and report the store's health."""
        report = await self._store.health_check()
        probe = {"timestamp": self._clock()}
        entry: CacheEntry[object] = CacheEntry(
            key=_HEALTH_KEY, value=probe, stored_at=self._clock(), ttl_ms=1000
        )
        round_trip = False
        if await self._store.set(_HEALTH_KEY, entry):
            result = await self._store.get(_HEALTH_KEY)
            round_trip = isinstance(result, Ok) and result.value.value == probe
            await self._store.delete(_HEALTH_KEY)
        healthy = report.reachable and round_trip
        if not healthy:
            logger.warning("cache_unhealthy", **report.to_dict(), round_trip=round_trip)
        return {
            "healthy": healthy,
            "roundTrip": round_trip,
            **report.to_dict(),
            "stats": (await self.get_stats()).to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

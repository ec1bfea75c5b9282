"""Cross-process invalidation of client caches.

Client caches live in each client's own storage, so the server cannot
delete them. Instead the server records a "clear all" signal and clients
poll for it on a fixed interval, wiping themselves when a signal newer than
their last check appears. Up to one poll interval of staleness is expected.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from storycache.client_cache import CACHE_PREFIX, ClientStatsCache
from storycache.config import CacheSettings
from storycache.duration import to_seconds
from storycache.logger import get_logger
from storycache.store import KeyValueStore
from storycache.types import CacheEntry, Clock, Ok, now_ms

logger = get_logger(__name__)

SIGNAL_KEY = "signal:clear-all"
POLL_INTERVAL_S = 120.0

# Signals are kept long enough for every polling client to notice them.
_SIGNAL_TTL_MS = 24 * 60 * 60 * 1000


class InvalidationSignal:
    """Server side of the clear-all signal.

    ``store`` must not be the server cache store: clearing or invalidating the
    cache would otherwise erase a pending signal.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        cache_prefix: str = CACHE_PREFIX,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._cache_prefix = cache_prefix
        self._clock = clock

    async def raise_signal(self) -> int:
        """Ask every client to clear its cache. Returns the signal timestamp."""
        raised_at = self._clock()
        entry: CacheEntry[object] = CacheEntry(
            key=SIGNAL_KEY,
            value={"raisedAt": raised_at},
            stored_at=raised_at,
            ttl_ms=_SIGNAL_TTL_MS,
        )
        stored = await self._store.set(SIGNAL_KEY, entry)
        logger.info("invalidation_signal_raised", raised_at=raised_at, stored=stored)
        return raised_at

    async def last_raised(self) -> int | None:
        result = await self._store.get(SIGNAL_KEY)
        if not isinstance(result, Ok):
            return None
        value = result.value.value
        if isinstance(value, dict) and isinstance(value.get("raisedAt"), int):
            return value["raisedAt"]
        return None

    async def check(self, since_ms: int | None = None) -> dict[str, Any]:
        """Build the response polled by clients."""
        # timestamp taken before the read so a concurrent signal is never skipped
        checked_at = self._clock()
        raised_at = await self.last_raised()
        clear_all = raised_at is not None and (since_ms is None or raised_at >= since_ms)
        return {
            "success": True,
            "message": "Cache clear signal pending" if clear_all else "No cache clear pending",
            "timestamp": checked_at,
            "instructions": {
                "clientAction": f"Clear cache entries with key pattern '{self._cache_prefix}*'",
                "cachePattern": f"{self._cache_prefix}*",
                "clearAll": clear_all,
                "raisedAt": raised_at,
            },
        }


class RemoteInvalidationPoller:
    """Client side: periodically asks the server whether to clear the cache."""

    def __init__(
        self,
        cache: ClientStatsCache,
        client: httpx.AsyncClient,
        *,
        endpoint: str = "/api/admin/clear-landing-cache",
        interval_s: float = POLL_INTERVAL_S,
    ) -> None:
        self._cache = cache
        self._client = client
        self._endpoint = endpoint
        self._interval_s = interval_s
        self._last_checked: int | None = None
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        cache: ClientStatsCache,
        client: httpx.AsyncClient,
        settings: CacheSettings,
    ) -> RemoteInvalidationPoller:
        return cls(
            cache,
            client,
            endpoint=settings.INVALIDATION_ENDPOINT,
            interval_s=to_seconds(settings.INVALIDATION_POLL_INTERVAL),
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_and_clear_if_invalidated(self) -> bool:
        """Poll once. Returns True if the cache was cleared.

        Any failure (transport error, closed client, non-success status,
        unexpected body) counts as "no invalidation"; the next poll tries again.
        """
        body = {"since": self._last_checked} if self._last_checked is not None else {}
        try:
            response = await self._client.post(self._endpoint, json=body)
            if not response.is_success:
                logger.debug("invalidation_poll_rejected", status=response.status_code)
                return False
            data = response.json()
        except Exception as exc:
            logger.warning("invalidation_poll_failed", error=f"{type(exc).__name__}: {exc}")
            return False

        if not isinstance(data, dict) or not data.get("success"):
            return False
        # the server clock, not ours, is what signals are compared against
        timestamp = data.get("timestamp")
        if isinstance(timestamp, int):
            self._last_checked = timestamp
        instructions = data.get("instructions")
        if not isinstance(instructions, dict) or not instructions.get("clearAll"):
            return False

        removed = self._cache.clear_all_cache()
        logger.info("invalidation_signal_applied", removed=removed)
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            await self.check_and_clear_if_invalidated()

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Cancel polling and wait for the loop to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

"""Request deduplication for outbound HTTP fetches.

Concurrent callers asking for the same ``METHOD:url:body`` share one
request; for a short time after it succeeds (30s by default) repeat callers
get the memoized result without any request. Failures reach every awaiter
and are never memoized.
"""

from __future__ import annotations

import asyncio
import json as jsonlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from storycache.config import CacheSettings
from storycache.duration import to_seconds
from storycache.logger import get_logger
from storycache.singleflight import SingleFlight
from storycache.types import Clock, now_ms

logger = get_logger(__name__)

DEFAULT_TTL_MS = 30_000
SWEEP_INTERVAL_S = 300.0


@dataclass(frozen=True, slots=True)
class _Memo:
    data: Any
    stored_at: int
    ttl_ms: int

    def valid(self, now: int) -> bool:
        return now - self.stored_at < self.ttl_ms


def request_key(method: str, url: str, body: Any = None) -> str:
    """Composite key: method, URL and serialized body, compared verbatim."""
    if body is None:
        serialized = ""
    elif isinstance(body, bytes):
        serialized = body.decode("utf-8", errors="replace")
    elif isinstance(body, str):
        serialized = body
    else:
        serialized = jsonlib.dumps(body, separators=(",", ":"), default=str)
    return f"{method.upper()}:{url}:{serialized}"


class RequestDeduplicator:
    """Single-flight HTTP fetches with a short-lived result memo."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        sweep_interval_s: float = SWEEP_INTERVAL_S,
        clock: Clock = now_ms,
    ) -> None:
        self._client = client
        self._default_ttl_ms = default_ttl_ms
        self._sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._flight = SingleFlight()
        self._results: dict[str, _Memo] = {}
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        client: httpx.AsyncClient,
        settings: CacheSettings,
        *,
        clock: Clock = now_ms,
    ) -> RequestDeduplicator:
        return cls(
            client,
            default_ttl_ms=settings.ms("DEDUP_TTL"),
            sweep_interval_s=to_seconds(settings.DEDUP_SWEEP_INTERVAL),
            clock=clock,
        )

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        json: Any = None,
        content: str | bytes | None = None,
        headers: dict[str, str] | None = None,
        ttl_ms: int | None = None,
    ) -> Any:
        """Fetch JSON from ``url``, sharing identical concurrent requests.

        Raises:
            httpx.HTTPStatusError: non-2xx response (raised to every awaiter)
            httpx.HTTPError: transport failure
        """
        body = json if json is not None else content
        key = request_key(method, url, body)

        async def send() -> Any:
            response = await self._client.request(
                method.upper(), url, json=json, content=content, headers=headers
            )
            response.raise_for_status()
            return response.json()

        return await self.run(key, send, ttl_ms=ttl_ms)

    async def run(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        *,
        ttl_ms: int | None = None,
    ) -> Any:
        """Deduplicate an arbitrary async operation under ``key``."""
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms

        # No await between the memo/in-flight checks and registration.
        memo = self._results.get(key)
        if memo is not None and memo.valid(self._clock()):
            logger.debug("dedup_memo_hit", key=key)
            return memo.data
        if key in self._flight:
            logger.debug("dedup_joined", key=key)
        else:
            logger.debug("dedup_request", key=key)

        def remember(data: Any) -> None:
            self._results[key] = _Memo(data=data, stored_at=self._clock(), ttl_ms=ttl)

        return await self._flight.do(key, operation, on_result=remember)

    def clear_expired(self) -> int:
        """Drop expired memoized results; in-flight requests are left alone."""
        now = self._clock()
        expired = [key for key, memo in self._results.items() if not memo.valid(now)]
        for key in expired:
            del self._results[key]
        if expired:
            logger.debug("dedup_swept", removed=len(expired))
        return len(expired)

    def clear_all(self) -> None:
        """Forget memoized results and stop sharing in-flight requests."""
        self._results.clear()
        self._flight.clear()

    def get_stats(self) -> dict[str, int]:
        return {"cacheSize": len(self._results), "pendingRequests": len(self._flight)}

    async def _sweep_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self.clear_expired()

    def start_sweeper(self, interval_s: float | None = None) -> None:
        """Run clear_expired() every ``interval_s`` seconds (default: configured)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = self._sweep_interval_s if interval_s is None else interval_s
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

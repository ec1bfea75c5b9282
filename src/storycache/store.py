"""Fail-soft key-value store in front of a storage adapter.

Every operation here converts adapter exceptions into typed results and logs
them, so cache unavailability degrades to "always recompute" instead of
failing requests.
"""

import time

from storycache.adapters.base import AsyncStorageAdapter
from storycache.logger import get_logger
from storycache.types import (
    Backend,
    BackendError,
    CacheEntry,
    HealthReport,
    Miss,
    Ok,
    StoreResult,
)

logger = get_logger(__name__)


class KeyValueStore:
    """Uniform get/set/delete/clear/scan interface over any adapter."""

    def __init__(self, adapter: AsyncStorageAdapter) -> None:
        self._adapter = adapter
        self.error_count = 0

    @property
    def backend(self) -> Backend:
        return self._adapter.backend

    @property
    def adapter(self) -> AsyncStorageAdapter:
        return self._adapter

    def _report(self, operation: str, key: str | None, exc: Exception) -> BackendError:
        self.error_count += 1
        error = BackendError(operation=operation, key=key, error=exc)
        logger.warning(
            "store_backend_error",
            operation=operation,
            key=key,
            backend=self.backend,
            error=error.details,
        )
        return error

    async def get(self, key: str) -> StoreResult:
        """Read an entry. Never raises."""
        try:
            entry = await self._adapter.get(key)
        except Exception as exc:
            return self._report("get", key, exc)
        if entry is None:
            return Miss()
        return Ok(entry)

    async def set(self, key: str, entry: CacheEntry[object]) -> bool:
        """Write an entry. Returns False (and logs) if the write was lost."""
        try:
            await self._adapter.set(key, entry)
        except Exception as exc:
            self._report("set", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        """Delete an entry. Returns True only if an entry was removed."""
        try:
            return await self._adapter.delete(key)
        except Exception as exc:
            self._report("delete", key, exc)
            return False

    async def clear(self) -> bool:
        try:
            await self._adapter.clear()
        except Exception as exc:
            self._report("clear", None, exc)
            return False
        return True

    async def scan(self, pattern: str) -> list[str]:
        """Keys matching a glob pattern; empty on backend error."""
        try:
            return await self._adapter.scan(pattern)
        except Exception as exc:
            self._report("scan", pattern, exc)
            return []

    async def count(self) -> int:
        try:
            return await self._adapter.count()
        except Exception as exc:
            self._report("count", None, exc)
            return 0

    async def health_check(self) -> HealthReport:
        """Ping the backend and time the round trip."""
        start = time.perf_counter()
        try:
            await self._adapter.ping()
        except Exception as exc:
            latency = (time.perf_counter() - start) * 1000
            self._report("ping", None, exc)
            return HealthReport(
                backend=self.backend,
                reachable=False,
                latency_ms=latency,
                error=f"{type(exc).__name__}: {exc}",
            )
        latency = (time.perf_counter() - start) * 1000
        return HealthReport(backend=self.backend, reachable=True, latency_ms=latency)

    async def disconnect(self) -> None:
        try:
            await self._adapter.disconnect()
        except Exception as exc:
            self._report("disconnect", None, exc)

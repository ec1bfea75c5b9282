"""Tests for the fail-soft key-value store."""

from storycache import BackendError, CacheEntry, KeyValueStore, Miss, Ok


def _entry(key: str, stored_at: int) -> CacheEntry[object]:
    return CacheEntry(key=key, value=key.upper(), stored_at=stored_at, ttl_ms=1000)


class TestKeyValueStore:
    async def test_get_returns_typed_results(self, store: KeyValueStore, clock) -> None:
        assert isinstance(await store.get("missing"), Miss)
        assert await store.set("a", _entry("a", clock.now)) is True
        result = await store.get("a")
        assert isinstance(result, Ok)
        assert result.value.value == "A"

    async def test_scan_and_delete(self, store: KeyValueStore, clock) -> None:
        await store.set("users:1", _entry("users:1", clock.now))
        await store.set("users:2", _entry("users:2", clock.now))
        assert sorted(await store.scan("users:*")) == ["users:1", "users:2"]
        assert await store.delete("users:1") is True
        assert await store.count() == 1

    async def test_health_check_memory(self, store: KeyValueStore) -> None:
        report = await store.health_check()
        assert report.backend == "memory"
        assert report.reachable is True
        assert report.latency_ms >= 0
        assert report.error is None


class TestFailSoft:
    """A store whose backend raises on every call never raises itself."""

    async def test_get_becomes_backend_error(self, failing_store: KeyValueStore) -> None:
        result = await failing_store.get("k")
        assert isinstance(result, BackendError)
        assert result.operation == "get"
        assert "ConnectionError" in result.details

    async def test_writes_are_dropped(self, failing_store: KeyValueStore, clock) -> None:
        assert await failing_store.set("k", _entry("k", clock.now)) is False
        assert await failing_store.delete("k") is False
        assert await failing_store.clear() is False

    async def test_scan_and_count_are_empty(self, failing_store: KeyValueStore) -> None:
        assert await failing_store.scan("*") == []
        assert await failing_store.count() == 0

    async def test_errors_are_counted(self, failing_store: KeyValueStore) -> None:
        await failing_store.get("a")
        await failing_store.scan("*")
        assert failing_store.error_count == 2

    async def test_health_check_reports_unreachable(self, failing_store: KeyValueStore) -> None:
        report = await failing_store.health_check()
        assert report.backend == "external"
        assert report.reachable is False
        assert "connection refused" in report.error

    async def test_disconnect_swallows(self, failing_store: KeyValueStore) -> None:
        await failing_store.disconnect()

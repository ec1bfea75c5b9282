"""Tests for memory adapter."""

import pytest

from storycache import AsyncMemoryAdapter, CacheEntry


def _entry(key: str, stored_at: int, ttl_ms: int = 1000, stale_until: int | None = None):
    return CacheEntry(
        key=key, value={"id": key}, stored_at=stored_at, ttl_ms=ttl_ms, stale_until=stale_until
    )


class TestAsyncMemoryAdapter:
    """Tests for async AsyncMemoryAdapter."""

    @pytest.mark.asyncio
    async def test_get_nonexistent_returns_none(self, async_adapter: AsyncMemoryAdapter) -> None:
        assert await async_adapter.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, async_adapter: AsyncMemoryAdapter, clock) -> None:
        await async_adapter.set("key1", _entry("key1", clock.now))
        result = await async_adapter.get("key1")
        assert result is not None
        assert result.value == {"id": "key1"}

    @pytest.mark.asyncio
    async def test_physically_expired_entry_is_dropped(
        self, async_adapter: AsyncMemoryAdapter, clock
    ) -> None:
        await async_adapter.set("key1", _entry("key1", clock.now, ttl_ms=1000))
        clock.advance(1000)
        assert await async_adapter.get("key1") is None
        assert await async_adapter.count() == 0

    @pytest.mark.asyncio
    async def test_entry_retained_until_stale_until(
        self, async_adapter: AsyncMemoryAdapter, clock
    ) -> None:
        await async_adapter.set("key1", _entry("key1", clock.now, 1000, clock.now + 5000))
        clock.advance(3000)
        assert await async_adapter.get("key1") is not None
        clock.advance(2000)
        assert await async_adapter.get("key1") is None

    @pytest.mark.asyncio
    async def test_delete(self, async_adapter: AsyncMemoryAdapter, clock) -> None:
        await async_adapter.set("key1", _entry("key1", clock.now))
        assert await async_adapter.delete("key1") is True
        assert await async_adapter.delete("key1") is False
        assert await async_adapter.get("key1") is None

    @pytest.mark.asyncio
    async def test_clear(self, async_adapter: AsyncMemoryAdapter, clock) -> None:
        await async_adapter.set("key1", _entry("key1", clock.now))
        await async_adapter.set("key2", _entry("key2", clock.now))
        await async_adapter.clear()
        assert await async_adapter.count() == 0

    @pytest.mark.asyncio
    async def test_scan_matches_glob(self, async_adapter: AsyncMemoryAdapter, clock) -> None:
        for key in ("users:all", "users:page2", "stories:all", "xusers:1"):
            await async_adapter.set(key, _entry(key, clock.now))
        assert sorted(await async_adapter.scan("users:*")) == ["users:all", "users:page2"]
        assert await async_adapter.scan("users:page?") == ["users:page2"]

    @pytest.mark.asyncio
    async def test_scan_skips_expired(self, async_adapter: AsyncMemoryAdapter, clock) -> None:
        await async_adapter.set("users:old", _entry("users:old", clock.now, ttl_ms=10))
        clock.advance(10)
        assert await async_adapter.scan("users:*") == []

    @pytest.mark.asyncio
    async def test_lru_eviction(self, clock) -> None:
        adapter = AsyncMemoryAdapter(max_items=2, clock=clock)
        await adapter.set("key1", _entry("key1", clock.now))
        await adapter.set("key2", _entry("key2", clock.now))
        await adapter.get("key1")  # touch
        await adapter.set("key3", _entry("key3", clock.now))  # evicts key2

        assert await adapter.get("key2") is None
        assert await adapter.get("key1") is not None
        assert await adapter.get("key3") is not None

    @pytest.mark.asyncio
    async def test_periodic_sweep_on_writes(self, clock) -> None:
        adapter = AsyncMemoryAdapter(sweep_every=2, clock=clock)
        await adapter.set("old", _entry("old", clock.now, ttl_ms=10))
        clock.advance(10)
        assert "old" in adapter._cache
        await adapter.set("new", _entry("new", clock.now))  # second write sweeps
        assert list(adapter._cache) == ["new"]

    @pytest.mark.asyncio
    async def test_count_excludes_expired_entries(self, clock) -> None:
        adapter = AsyncMemoryAdapter(sweep_every=1000, clock=clock)
        await adapter.set("old", _entry("old", clock.now, ttl_ms=10))
        await adapter.set("live", _entry("live", clock.now, ttl_ms=60_000))
        clock.advance(10)
        assert await adapter.count() == 1

    @pytest.mark.asyncio
    async def test_ping_and_disconnect_are_noops(self, async_adapter: AsyncMemoryAdapter) -> None:
        await async_adapter.ping()
        await async_adapter.disconnect()

"""Shared pytest fixtures."""

import pytest

from storycache import (
    AsyncMemoryAdapter,
    CacheEntry,
    CacheManager,
    ClientStatsCache,
    KeyValueStore,
    MemoryWebStorage,
)
from storycache.types import Backend

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailingAdapter:
    """Adapter whose every operation raises, like an unreachable Redis."""

    backend: Backend = "external"

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self) -> None:
        self.calls += 1
        raise ConnectionError("connection refused")

    async def get(self, key: str) -> CacheEntry[object] | None:
        self._fail()

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        self._fail()

    async def delete(self, key: str) -> bool:
        self._fail()

    async def scan(self, pattern: str) -> list[str]:
        self._fail()

    async def count(self) -> int:
        self._fail()

    async def ping(self) -> None:
        self._fail()

    async def clear(self) -> None:
        self._fail()

    async def disconnect(self) -> None:
        self._fail()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def async_adapter(clock: FakeClock) -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter(clock=clock)


@pytest.fixture
def store(async_adapter: AsyncMemoryAdapter) -> KeyValueStore:
    return KeyValueStore(async_adapter)


@pytest.fixture
def failing_store() -> KeyValueStore:
    return KeyValueStore(FailingAdapter())


@pytest.fixture
def manager(store: KeyValueStore, clock: FakeClock) -> CacheManager:
    return CacheManager(store, clock=clock)


@pytest.fixture
def web_storage() -> MemoryWebStorage:
    return MemoryWebStorage()


@pytest.fixture
def client_cache(web_storage: MemoryWebStorage, clock: FakeClock) -> ClientStatsCache:
    return ClientStatsCache(web_storage, clock=clock)

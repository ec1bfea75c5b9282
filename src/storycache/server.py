"""FastAPI application wiring the server cache components together."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storycache.adapters.memory import AsyncMemoryAdapter
from storycache.api import create_cache_router
from storycache.config import CacheSettings, get_settings
from storycache.duration import format_duration
from storycache.invalidation import InvalidationSignal
from storycache.logger import get_logger, setup_logging
from storycache.manager import CacheManager
from storycache.store import KeyValueStore

logger = get_logger(__name__)

CACHE_NAMESPACE = "cache"
# Kept apart from cached data so clearing or invalidating the cache never drops a signal
SIGNAL_NAMESPACE = "signals"


async def connect_store(
    settings: CacheSettings,
    *,
    namespace: str = CACHE_NAMESPACE,
    max_items: int | None = None,
) -> KeyValueStore:
    """Use Redis when configured and reachable, the memory store otherwise."""
    if settings.REDIS_URL:
        from storycache.adapters.redis import AsyncRedisAdapter

        adapter = AsyncRedisAdapter.from_url(
            settings.REDIS_URL,
            prefix=settings.REDIS_PREFIX,
            namespace=namespace,
            connect_timeout=settings.REDIS_CONNECT_TIMEOUT_S,
        )
        store = KeyValueStore(adapter)
        report = await store.health_check()
        if report.reachable:
            logger.info(
                "cache_store_connected",
                backend=store.backend,
                namespace=namespace,
                latency_ms=report.latency_ms,
            )
            return store
        logger.warning("cache_store_fallback_to_memory", namespace=namespace, error=report.error)
        await store.disconnect()

    store = KeyValueStore(AsyncMemoryAdapter(max_items=max_items))
    logger.info("cache_store_connected", backend=store.backend, namespace=namespace)
    return store


def create_app(
    settings: CacheSettings | None = None,
    store: KeyValueStore | None = None,
    signal_store: KeyValueStore | None = None,
) -> FastAPI:
    """Build the app. ``store`` and ``signal_store`` override the ones derived from settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
        active = store or await connect_store(settings, max_items=settings.MEMORY_MAX_ITEMS)
        signals = signal_store or await connect_store(settings, namespace=SIGNAL_NAMESPACE)
        manager = CacheManager.from_settings(active, settings)
        app.state.cache_manager = manager
        app.state.invalidation_signal = InvalidationSignal(signals)
        logger.info(
            "cache_ready",
            backend=active.backend,
            stats_ttl=format_duration(manager.ttl_policy.stats_ms),
            users_ttl=format_duration(manager.ttl_policy.users_ms),
            stories_ttl=format_duration(manager.ttl_policy.stories_ms),
        )
        try:
            yield
        finally:
            await active.disconnect()
            await signals.disconnect()

    app = FastAPI(title="storycache", lifespan=lifespan)
    app.include_router(create_cache_router(), prefix="/api")
    return app

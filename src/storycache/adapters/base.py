"""Base adapter protocol for storage backends."""

from typing import Protocol, runtime_checkable

from storycache.types import Backend, CacheEntry


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async storage adapter interface.

    Adapters may raise on backend failure; :class:`storycache.store.KeyValueStore`
    is the fail-soft boundary in front of them.
    """

    backend: Backend

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        ...

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry until its physical expiry."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete a cache entry. Returns True if something was removed."""
        ...

    async def scan(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern ("users:*")."""
        ...

    async def count(self) -> int:
        """Number of stored entries."""
        ...

    async def ping(self) -> None:
        """Round-trip to the backend; raise if it is unreachable."""
        ...

    async def clear(self) -> None:
        """Clear all cached entries."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...

"""Redis storage adapter."""

from __future__ import annotations

import json
from typing import Any

from storycache.exceptions import CacheBackendError
from storycache.types import Backend, CacheEntry

_SCAN_COUNT = 100


def _serialize_entry(entry: CacheEntry[object]) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(entry.to_dict())


def _deserialize_entry(data: bytes | str) -> CacheEntry[object]:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return CacheEntry.from_dict(json.loads(data))


class AsyncRedisAdapter:
    """Async Redis storage adapter.

    Shared by every server instance pointing at the same Redis, so pattern
    invalidations issued by one instance are seen by all of them.
    """

    backend: Backend = "external"

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "storycache",
        namespace: str = "cache",
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._namespace = namespace

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        prefix: str = "storycache",
        namespace: str = "cache",
        connect_timeout: float = 5.0,
    ) -> AsyncRedisAdapter:
        """Build an adapter around a new ``redis.asyncio`` client."""
        import redis.asyncio

        client = redis.asyncio.Redis.from_url(
            url,
            socket_connect_timeout=connect_timeout,
            socket_timeout=connect_timeout,
            decode_responses=False,
        )
        return cls(client, prefix=prefix, namespace=namespace)

    def _cache_key(self, key: str) -> str:
        """Generate full Redis key for entries in this namespace."""
        return f"{self._prefix}:{self._namespace}:{key}"

    def _strip(self, full_key: bytes | str) -> str:
        if isinstance(full_key, bytes):
            full_key = full_key.decode("utf-8")
        return full_key[len(self._cache_key("")) :]

    async def _scan_full_keys(self, pattern: str) -> list[bytes | str]:
        cursor: int = 0
        found: list[bytes | str] = []
        while True:
            result = await self._client.scan(cursor, match=pattern, count=_SCAN_COUNT)
            cursor = result[0]
            found.extend(result[1])
            if cursor == 0:
                break
        return found

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        data = await self._client.get(self._cache_key(key))
        if data is None:
            return None
        try:
            return _deserialize_entry(data)
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheBackendError("Malformed cache entry", details={"key": key}) from exc

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry with automatic expiration."""
        await self._client.set(
            self._cache_key(key),
            _serialize_entry(entry),
            pxat=entry.physical_expiry,
        )

    async def delete(self, key: str) -> bool:
        """Delete a cache entry."""
        return bool(await self._client.delete(self._cache_key(key)))

    async def scan(self, pattern: str) -> list[str]:
        """Find keys with Redis' native SCAN MATCH."""
        full_keys = await self._scan_full_keys(self._cache_key(pattern))
        return [self._strip(k) for k in full_keys]

    async def count(self) -> int:
        return len(await self._scan_full_keys(self._cache_key("*")))

    async def ping(self) -> None:
        await self._client.ping()

    async def clear(self) -> None:
        """Clear this namespace (other Redis data is untouched)."""
        keys = await self._scan_full_keys(self._cache_key("*"))
        if keys:
            await self._client.delete(*keys)

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()

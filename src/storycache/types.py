"""Core types for the storycache library."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, Literal, TypeVar

T = TypeVar("T")

Clock = Callable[[], int]  # returns Unix timestamp ms


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with write metadata."""

    key: str
    value: T
    stored_at: int  # Unix timestamp ms
    ttl_ms: int
    stale_until: int | None = None  # retained for stale fallback until then

    def is_fresh(self, now: int) -> bool:
        return now - self.stored_at < self.ttl_ms

    def age_ms(self, now: int) -> int:
        return now - self.stored_at

    @property
    def expires_at(self) -> int:
        return self.stored_at + self.ttl_ms

    @property
    def physical_expiry(self) -> int:
        """Time after which a store may drop the entry entirely."""
        return max(self.stale_until or 0, self.expires_at)

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "value": self.value,
            "stored_at": self.stored_at,
            "ttl_ms": self.ttl_ms,
            "stale_until": self.stale_until,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "CacheEntry[object]":
        stale_until = data.get("stale_until")
        return cls(
            key=str(data["key"]),
            value=data["value"],
            stored_at=int(data["stored_at"]),  # type: ignore[arg-type]
            ttl_ms=int(data["ttl_ms"]),  # type: ignore[arg-type]
            stale_until=int(stale_until) if stale_until is not None else None,  # type: ignore[arg-type]
        )


# Store read results


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """The store returned an entry."""

    value: T


@dataclass(frozen=True, slots=True)
class Miss:
    """The store has no entry for the key."""


@dataclass(frozen=True, slots=True)
class BackendError:
    """The store failed; callers treat this as a miss."""

    operation: str
    key: str | None
    error: BaseException

    @property
    def details(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


StoreResult = Ok[CacheEntry[object]] | Miss | BackendError


@dataclass(frozen=True, slots=True)
class CachedValue(Generic[T]):
    """A value served by the cache manager."""

    value: T
    age_ms: int
    stale: bool = False


Backend = Literal["external", "memory"]


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Observability snapshot of a backing store."""

    backend: Backend
    reachable: bool
    latency_ms: float
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "backend": self.backend,
            "reachable": self.reachable,
            "latencyMs": round(self.latency_ms, 2),
            "error": self.error,
        }


@dataclass(slots=True)
class CacheStats:
    """Counters reported by the cache manager."""

    hit_count: int = 0
    miss_count: int = 0
    invalidation_count: int = 0
    error_count: int = 0
    backend: Backend = "memory"
    entry_count: int = 0
    extra: dict[str, object] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        if total == 0:
            return 0.0
        return round(self.hit_count / total * 100, 1)

    def to_dict(self) -> dict[str, object]:
        return {
            "hitCount": self.hit_count,
            "missCount": self.miss_count,
            "invalidationCount": self.invalidation_count,
            "errorCount": self.error_count,
            "hitRate": f"{self.hit_rate}%",
            "backend": self.backend,
            "entryCount": self.entry_count,
            **self.extra,
        }


# Storage availability probe results


@dataclass(frozen=True, slots=True)
class Available:
    """Persistent storage accepted a probe write."""


@dataclass(frozen=True, slots=True)
class Unavailable:
    """Persistent storage refused a probe write."""

    reason: str


Availability = Available | Unavailable

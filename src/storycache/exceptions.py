"""Exceptions raised by storycache components.

Store and storage failures are normally recovered inside the library (they
degrade to cache misses). These types exist so that adapters and storage
backends can signal failures precisely, and so that the boundary code can
log them with structured context.
"""

from typing import Any


class CacheError(Exception):
    """Base exception for all storycache errors.

    Attributes:
        message: Error message
        details: Additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dict for logging or API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class CacheBackendError(CacheError):
    """Raised by an adapter when the backing store cannot serve a request."""


class StorageError(CacheError):
    """Base exception for persistent client storage failures."""


class StorageUnavailableError(StorageError):
    """Raised when persistent storage is disabled or cannot be opened.

    Common causes:
    - Storage disabled by privacy settings
    - Storage file not writable
    """


class QuotaExceededError(StorageError):
    """Raised when a write would exceed the storage quota."""


class CorruptedEntryError(CacheError):
    """Raised when a persisted entry does not have the expected shape."""

"""localStorage-style persistent storage backends for the client cache.

Both backends behave like a browser's ``Storage`` object: string keys and
values, index-based enumeration, a byte quota that raises
:class:`QuotaExceededError` when exceeded, and an availability switch that
makes every call raise :class:`StorageUnavailableError` (the analog of
storage disabled by privacy settings).
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Protocol, runtime_checkable

from filelock import FileLock, Timeout

from storycache.exceptions import QuotaExceededError, StorageUnavailableError

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
LOCK_TIMEOUT_S = 10.0


@runtime_checkable
class WebStorage(Protocol):
    """Synchronous string key/value storage with index enumeration."""

    @property
    def length(self) -> int: ...

    def key(self, index: int) -> str | None: ...

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def clear(self) -> None: ...


def _size(data: dict[str, str]) -> int:
    return sum(len(k) + len(v) for k, v in data.items())


class MemoryWebStorage:
    """In-process storage; lost when the process exits."""

    def __init__(self, quota_bytes: int | None = DEFAULT_QUOTA_BYTES) -> None:
        self._data: dict[str, str] = {}
        self._quota = quota_bytes
        self.enabled = True

    def _check(self) -> None:
        if not self.enabled:
            raise StorageUnavailableError("Storage is disabled")

    @property
    def length(self) -> int:
        self._check()
        return len(self._data)

    def key(self, index: int) -> str | None:
        self._check()
        keys = list(self._data)
        return keys[index] if 0 <= index < len(keys) else None

    def get_item(self, key: str) -> str | None:
        self._check()
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check()
        if self._quota is not None:
            projected = dict(self._data)
            projected[key] = value
            if _size(projected) > self._quota:
                raise QuotaExceededError(
                    "Storage quota exceeded", details={"key": key, "quota": self._quota}
                )
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._check()
        self._data.pop(key, None)

    def clear(self) -> None:
        self._check()
        self._data.clear()


class FileWebStorage:
    """Storage persisted as a JSON object in a single file.

    Every call reads the file. Mutations hold a sibling ``.lock`` file for
    the whole read-modify-write and replace the file atomically, so several
    processes sharing the file never lose each other's writes. A write that
    fails leaves no temporary file behind.
    """

    def __init__(
        self,
        path: str | Path,
        quota_bytes: int | None = DEFAULT_QUOTA_BYTES,
        *,
        lock_timeout: float = LOCK_TIMEOUT_S,
    ) -> None:
        self._path = Path(path)
        self._quota = quota_bytes
        self._lock = FileLock(f"{self._path}.lock", timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageUnavailableError(
                "Storage file is not readable", details={"path": str(self._path), "error": str(exc)}
            ) from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StorageUnavailableError(
                "Storage file is not valid JSON", details={"path": str(self._path)}
            ) from exc
        if not isinstance(data, dict):
            raise StorageUnavailableError(
                "Storage file does not hold an object", details={"path": str(self._path)}
            )
        return {str(k): str(v) for k, v in data.items()}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Serialize read-modify-write cycles across processes."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._lock.acquire()
        except (Timeout, OSError) as exc:
            raise StorageUnavailableError(
                "Storage file is locked", details={"path": str(self._path), "error": str(exc)}
            ) from exc
        try:
            yield
        finally:
            self._lock.release()

    def _write(self, data: dict[str, str]) -> None:
        # caller holds the lock
        try:
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".storage-")
        except OSError as exc:
            raise StorageUnavailableError(
                "Storage file is not writable", details={"path": str(self._path), "error": str(exc)}
            ) from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self._path)
        except BaseException as exc:
            with suppress(OSError):
                os.unlink(tmp)
            if not isinstance(exc, OSError):
                raise
            raise StorageUnavailableError(
                "Storage file is not writable", details={"path": str(self._path), "error": str(exc)}
            ) from exc

    @property
    def length(self) -> int:
        return len(self._read())

    def key(self, index: int) -> str | None:
        keys = list(self._read())
        return keys[index] if 0 <= index < len(keys) else None

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._locked():
            data = self._read()
            data[key] = value
            if self._quota is not None and _size(data) > self._quota:
                raise QuotaExceededError(
                    "Storage quota exceeded", details={"key": key, "quota": self._quota}
                )
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._locked():
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def clear(self) -> None:
        with self._locked():
            self._write({})

"""In-flight call coalescing (stampede protection)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


def _retrieve(task: asyncio.Task[Any]) -> None:
    # Mark the exception as retrieved even if every awaiter was cancelled.
    if not task.cancelled():
        task.exception()


class SingleFlight:
    """Collapse concurrent calls with the same key into one execution.

    The lookup and the registration of a new task happen without any
    ``await`` in between, so on a single event loop two callers can never
    both start an execution for the same key. Every awaiter receives the same
    result or the same exception. The key is released as soon as the
    execution settles, before ``on_result`` runs.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def __contains__(self, key: object) -> bool:
        return key in self._in_flight

    async def do(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None] | None = None,
    ) -> T:
        """Run ``fn`` for ``key`` unless an execution is already in flight."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fn, on_result))
            self._in_flight[key] = task
            task.add_done_callback(_retrieve)
        # shield: a cancelled awaiter must not cancel the shared execution
        return await asyncio.shield(task)

    async def _run(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None] | None,
    ) -> T:
        try:
            result = await fn()
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
        if on_result is not None:
            on_result(result)
        return result

    def forget(self, key: str) -> None:
        """Stop sharing the current execution for ``key`` with new callers."""
        self._in_flight.pop(key, None)

    def clear(self) -> None:
        self._in_flight.clear()

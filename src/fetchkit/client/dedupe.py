"""Sharing of identical in-flight calls."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable


class RequestDeduper:
    """Lets concurrent identical calls share one execution.

    The first caller for a key starts the work; callers arriving while it
    is still running await the same task. The key is forgotten as soon as
    the task finishes, successfully or not, so the next call starts
    fresh. Each caller awaits through :func:`asyncio.shield`, so one
    caller being cancelled does not cancel the shared work for the rest.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future] = {}

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Await the in-flight call for *key*, starting it with *factory* if needed."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            task.exception()

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def in_flight_keys(self) -> list[str]:
        return list(self._in_flight)

    def clear(self) -> None:
        """Forget every in-flight call. Running calls are not cancelled."""
        self._in_flight.clear()

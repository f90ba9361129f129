"""Push-based cancellation signal shared between a caller and its requests.

A :class:`CancelSignal` is created by the caller (usually through
:meth:`~fetchkit.client.AsyncClient.create_cancel_signal`) and passed in
a request's options. Calling :meth:`CancelSignal.cancel` wakes every
coroutine currently blocked in :meth:`CancelSignal.wait`, which the
orchestrator races against both the transport call and the retry delay.

The signal is deliberately separate from the timeout alarm: the
orchestrator tags timeout aborts with an explicit ``is_timeout`` flag on
:class:`AbortError`, so the two outcomes never need to be told apart by
elapsed time.

Example::

    signal = CancelSignal()
    task = asyncio.create_task(client.get("/slow", signal=signal))
    signal.cancel("user navigated away")
    await task  # raises FetchError(category=ErrorCategory.CANCEL)
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional


class AbortError(Exception):
    """Raised by the orchestrator when a request loses its race.

    ``is_timeout`` is ``True`` when the per-call timeout fired first and
    ``False`` when the caller's :class:`CancelSignal` fired first.
    """

    def __init__(
        self,
        message: str = "The operation was aborted",
        *,
        is_timeout: bool = False,
        reason: Any = None,
    ):
        super().__init__(message)
        self.is_timeout = is_timeout
        self.reason = reason


class CancelSignal:
    """One-shot cancellation flag that can be awaited.

    Cancelling is idempotent; the first reason given is kept.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Any = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Any:
        return self._reason

    def cancel(self, reason: Optional[Any] = None) -> None:
        """Assert the signal, waking every pending :meth:`wait`."""
        if self._event.is_set():
            return
        self._reason = reason if reason is not None else "cancelled"
        self._event.set()

    async def wait(self) -> Any:
        """Block until the signal is asserted and return its reason."""
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self.cancelled else "pending"
        return f"<CancelSignal {state}>"

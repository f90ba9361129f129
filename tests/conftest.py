"""Shared test fixtures for fetchkit.

Provides isolated config directories, output state management, an
in-memory cache backend, a scripted transport adapter and a recording
sleep so retry tests never actually wait.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

import pytest

from fetchkit.adapters.base import Adapter, AdapterRequest, AdapterResponse
from fetchkit.cache.persistence import MemoryPersistence
from fetchkit.cache.stores import DictStore
from fetchkit.output import OutputFormat, OutputManager, reset_output, set_output

HANG = object()
"""Scripted outcome that never completes on its own."""

Outcome = Union[AdapterResponse, BaseException, object]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager keeps references to sys.stdout/sys.stderr from creation
    time; CliRunner swaps those streams, so a stale manager would write
    to closed files in the next test.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_CONFIG_HOME, XDG_CACHE_HOME and XDG_DATA_HOME at tmp_path.

    Also clears every FETCHKIT_* variable and forces the XDG layout so
    paths are the same on every platform.

    Returns:
        The tmp_path root.
    """
    monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "FETCHKIT_BASE_URL",
        "FETCHKIT_TIMEOUT",
        "FETCHKIT_RETRY_COUNT",
        "FETCHKIT_CACHE_TTL",
        "FETCHKIT_CACHE_BACKEND",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN, quiet OutputManager for the duration of the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a PLAIN, verbose, colourless OutputManager so debug lines are visible."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_persistence() -> MemoryPersistence:
    backend = MemoryPersistence()
    yield backend
    backend.close()


class FailingStore(DictStore):
    """Dict store whose reads or writes raise the way a broken disk store does."""

    def __init__(
        self, *, reads: Optional[Exception] = None, writes: Optional[Exception] = None
    ) -> None:
        super().__init__()
        self._read_error = reads
        self._write_error = writes

    def get_item(self, key: str):
        if self._read_error is not None:
            raise self._read_error
        return super().get_item(key)

    def set_item(self, key: str, value: str) -> None:
        if self._write_error is not None:
            raise self._write_error
        super().set_item(key, value)


@pytest.fixture
def failing_store():
    """Factory fixture building a :class:`FailingStore`."""
    return FailingStore


# ---------------------------------------------------------------------------
# Transport fixtures
# ---------------------------------------------------------------------------


class ScriptedAdapter(Adapter):
    """Adapter that replays a script of outcomes and records every request.

    Each call consumes the next outcome: an :class:`AdapterResponse` is
    returned, an exception is raised, and :data:`HANG` blocks until the
    task is cancelled. The last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes: Outcome, name: str = "scripted") -> None:
        self._outcomes = list(outcomes) or [AdapterResponse(data=None, status=200)]
        self._name = name
        self.requests: list[AdapterRequest] = []
        self.cancelled = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def request(self, request: AdapterRequest) -> AdapterResponse:
        self.requests.append(request)
        index = min(len(self.requests), len(self._outcomes)) - 1
        outcome = self._outcomes[index]
        if outcome is HANG:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def scripted():
    """Factory fixture building a :class:`ScriptedAdapter`."""
    return ScriptedAdapter


@pytest.fixture
def hang() -> object:
    """The outcome that makes a :class:`ScriptedAdapter` call block."""
    return HANG


class RecordingSleep:
    """Stand-in for :func:`asyncio.sleep` that records delays and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


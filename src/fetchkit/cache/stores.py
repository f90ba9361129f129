"""Raw key/value stores backing the cache persistence layer.

A store only knows how to read, write, remove and enumerate string
records. Quota, expiry and namespacing live one level up in
:mod:`fetchkit.cache.persistence`, so any object satisfying
:class:`KeyValueStore` can be injected there.

Three stores ship with fetchkit:

* :class:`DictStore` -- a plain process-local dict.
* :class:`DiskStore` -- a :class:`diskcache.Cache` directory. Durable
  across processes and safe to open from several instances at once.
* :func:`session_store` -- one process-wide :class:`DiskStore` in a
  temporary directory that is removed when the process exits, which
  bounds its contents to the current session.
"""

from __future__ import annotations

import atexit
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import diskcache


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal storage capability consumed by persistence backends."""

    def get_item(self, key: str) -> Optional[Any]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> bool: ...

    def iter_keys(self) -> list[str]: ...

    def close(self) -> None: ...


class DictStore:
    """Process-local store backed by a ``dict``."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[Any]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def iter_keys(self) -> list[str]:
        return list(self._items)

    def close(self) -> None:
        self._items.clear()


class DiskStore:
    """Durable store backed by a :class:`diskcache.Cache` directory.

    Args:
        directory: Directory holding the cache database. Created if
            missing.
        remove_on_close: Delete *directory* when the store is closed.
    """

    def __init__(self, directory: str | Path, *, remove_on_close: bool = False) -> None:
        self._directory = Path(directory)
        self._remove_on_close = remove_on_close
        self._cache: Optional[diskcache.Cache] = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def _require_open(self) -> diskcache.Cache:
        if self._cache is None:
            raise RuntimeError(f"Store at {self._directory} is closed")
        return self._cache

    def get_item(self, key: str) -> Optional[Any]:
        return self._require_open().get(key)

    def set_item(self, key: str, value: str) -> None:
        self._require_open().set(key, value)

    def remove_item(self, key: str) -> bool:
        return bool(self._require_open().delete(key))

    def iter_keys(self) -> list[str]:
        return [key for key in self._require_open().iterkeys() if isinstance(key, str)]

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
            self._cache = None
        if self._remove_on_close:
            shutil.rmtree(self._directory, ignore_errors=True)


_session_lock = threading.Lock()
_session: Optional[DiskStore] = None


def session_store() -> DiskStore:
    """Return the process-wide session store, creating it on first use.

    The store lives in a fresh temporary directory which is removed at
    interpreter exit, so nothing written to it outlives the session.
    """
    global _session
    with _session_lock:
        if _session is None:
            directory = tempfile.mkdtemp(prefix="fetchkit-session-")
            _session = DiskStore(directory, remove_on_close=True)
        return _session


def close_session_store() -> None:
    """Close and delete the session store. A later call starts a new session."""
    global _session
    with _session_lock:
        if _session is not None:
            _session.close()
            _session = None


atexit.register(close_session_store)

"""Backend selection with silent fallback.

:func:`create_persistence` walks an ordered list of candidate
constructors. Each durable candidate is checked right after construction
with a throwaway write and remove; a candidate that fails to build or
pass the check is skipped with a debug message only. The in-memory backend is
always the last candidate and cannot fail, so a caller always gets a
working backend.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from fetchkit.cache.persistence import (
    DEFAULT_MAX_SIZE,
    CachePersistence,
    LocalPersistence,
    MemoryPersistence,
    SessionPersistence,
)
from fetchkit.exceptions import ConfigError
from fetchkit.models import PersistenceConfig
from fetchkit.output import debug

BackendFactory = Callable[[], CachePersistence]

_KINDS = ("auto", "local", "session", "memory")


def _candidates(
    kind: str,
    namespace: Optional[str],
    max_size: Optional[int],
    directory: Optional[str | Path],
) -> list[tuple[str, BackendFactory]]:
    def local() -> CachePersistence:
        return LocalPersistence(namespace=namespace, max_size=max_size, directory=directory)

    def session() -> CachePersistence:
        return SessionPersistence(namespace=namespace, max_size=max_size)

    durable = {"local": local, "session": session}
    if kind == "auto":
        return [("local", local)]
    if kind in durable:
        return [(kind, durable[kind])]
    return []


def create_persistence(
    kind: str = "auto",
    *,
    namespace: Optional[str] = None,
    max_size: Optional[int] = DEFAULT_MAX_SIZE,
    directory: Optional[str | Path] = None,
) -> CachePersistence:
    """Build the first usable backend for *kind*.

    ``auto`` tries the durable local backend, then memory. An explicit
    ``local`` or ``session`` tries that backend, then memory. ``memory``
    goes straight to the in-process backend.

    Args:
        kind: One of ``auto``, ``local``, ``session``, ``memory``.
        namespace: Key prefix; ``None`` keeps each backend's default.
        max_size: Quota in bytes, or ``None`` for no quota.
        directory: Store directory for the local backend.

    Raises:
        ConfigError: If *kind* is not a known backend name.
    """
    if kind not in _KINDS:
        raise ConfigError(
            f"Unknown cache backend '{kind}'. Expected one of: {', '.join(_KINDS)}"
        )

    for name, factory in _candidates(kind, namespace, max_size, directory):
        backend: Optional[CachePersistence] = None
        try:
            backend = factory()
            backend.check_writable()
        except Exception as exc:
            debug(f"Cache backend '{name}' unavailable, falling back: {exc}")
            if backend is not None:
                backend.close()
            continue
        debug(f"Using '{name}' cache backend")
        return backend

    debug("Using 'memory' cache backend")
    return MemoryPersistence(max_size=max_size, namespace=namespace)


def persistence_from_config(config: PersistenceConfig) -> CachePersistence:
    """Build a backend from a :class:`~fetchkit.models.PersistenceConfig`."""
    return create_persistence(
        config.kind,
        namespace=config.namespace,
        max_size=config.max_size,
        directory=config.directory,
    )

"""Deterministic cache keys for requests.

A key is ``METHOD:url:params:body`` where ``params`` and ``body`` are
canonical JSON: object keys are sorted at every nesting level while lists
keep their order. Two requests that differ only in dict insertion order
therefore share a key. The body only takes part for mutating methods,
so a GET with a stray body still hits the same entry.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any, Optional

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def canonicalize(value: Any) -> Any:
    """Return *value* with every mapping's keys sorted, recursively.

    Lists and tuples keep positional order; their elements are
    canonicalised individually.

    Mapping keys are stringified, matching what reaches the wire: query
    strings and JSON objects only carry string keys, so ``{1: "a"}`` and
    ``{"1": "a"}`` describe the same request and share a cache key.
    """
    if isinstance(value, Mapping):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def _dumps(value: Any) -> str:
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def derive_cache_key(
    url: str,
    *,
    method: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
    body: Any = None,
    mutating_methods: Optional[Iterable[str]] = None,
) -> str:
    """Compute the cache key for a request.

    Args:
        url: Fully resolved request URL (without the query string).
        method: HTTP method; defaults to ``GET``. Case-insensitive.
        params: Query parameter tree.
        body: Request body. Ignored unless *method* is mutating.
        mutating_methods: Methods whose body is part of the key. Defaults
            to :data:`MUTATING_METHODS`.

    Returns:
        The opaque key string.
    """
    verb = (method or "GET").upper()
    mutating = (
        MUTATING_METHODS
        if mutating_methods is None
        else frozenset(m.upper() for m in mutating_methods)
    )

    params_part = _dumps(params) if params else ""
    body_part = _dumps(body) if verb in mutating and body is not None else ""
    return f"{verb}:{url}:{params_part}:{body_part}"

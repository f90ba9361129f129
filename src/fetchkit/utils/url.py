"""URL joining and query-string serialisation.

Query parameters may be nested. Nested mappings become bracketed keys
(``filter[status]=open``), lists repeat their key (``tag=a&tag=b``),
``None`` values are dropped, booleans are written as ``true``/``false``
and dates as ISO-8601.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import urlencode

_ABSOLUTE_PREFIXES = ("http://", "https://")


def is_absolute(url: str) -> bool:
    return url.startswith(_ABSOLUTE_PREFIXES)


def join_url(base_url: str, url: str) -> str:
    """Resolve *url* against *base_url*.

    Absolute URLs and an empty base pass through unchanged. Otherwise
    exactly one slash separates the two parts.

    Example::

        >>> join_url("https://api.example.com/v1", "/users")
        'https://api.example.com/v1/users'
    """
    if not base_url or is_absolute(url):
        return url
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    path = url[1:] if url.startswith("/") else url
    return f"{base}{path}"


def serialize_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def flatten_params(params: Mapping[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten a nested parameter tree into ordered ``(key, value)`` pairs."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((name, serialize_param(item)) for item in value if item is not None)
        elif isinstance(value, Mapping):
            pairs.extend(flatten_params(value, name))
        else:
            pairs.append((name, serialize_param(value)))
    return pairs


def build_url(url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Append *params* to *url* as a query string.

    An existing query string on *url* is kept and extended.
    """
    if not params:
        return url
    query = urlencode(flatten_params(params))
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"

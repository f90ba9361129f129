"""JSON record format for persisted cache entries.

Each record is ``{"value": ..., "createdAt": ..., "expiresAt": ...}``
with epoch-second timestamps. Entries written with a stale time also
carry ``"staleAt"``; records without it read back as never stale.

Sizes are estimated as the UTF-8 byte length of the serialised record,
which is what the durable stores actually hold.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from fetchkit.models import CacheEntry


class SerializationError(ValueError):
    """A cache entry could not be encoded or a stored record could not be decoded."""


def serialize_entry(entry: CacheEntry) -> str:
    """Encode *entry* as a JSON record.

    Raises:
        SerializationError: If the entry's value is not JSON-serialisable.
    """
    try:
        exclude = {"stale_at"} if entry.stale_at is None else None
        data = entry.model_dump(mode="json", by_alias=True, exclude=exclude)
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize cache entry: {exc}") from exc


def deserialize_entry(raw: str) -> CacheEntry:
    """Decode a JSON record produced by :func:`serialize_entry`.

    Raises:
        SerializationError: If the record is not valid JSON or does not
            have the entry shape.
    """
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise SerializationError("Cache record is not a JSON object")
        return CacheEntry.model_validate(data)
    except (json.JSONDecodeError, TypeError, ValidationError) as exc:
        raise SerializationError(f"Failed to deserialize cache entry: {exc}") from exc


def estimate_size(record: str) -> int:
    """Byte size of a serialised record."""
    return len(record.encode("utf-8"))

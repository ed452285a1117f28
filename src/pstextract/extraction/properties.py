from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional


def to_text(value: Any) -> Optional[str]:
    """
    Coerce a property value to text. Binary values are decoded as UTF-8.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return iso_datetime(value)
    return str(value)


def iso_datetime(value: datetime) -> str:
    """UTC, millisecond precision, "Z" suffix, e.g. 2024-01-01T00:00:00.000Z."""
    # naive timestamps from the container are UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def get_prop(props: Mapping[str, Any] | None, *keys: str) -> Any:
    """
    Return the first non-null value among ``keys``, tried in the given order.
    Missing keys, odd property sets and failing lookups all count as absent.
    """
    if not props:
        return None
    for key in keys:
        try:
            value = props.get(key)
        except Exception:
            continue
        if value is not None:
            return value
    return None


def get_text(props: Mapping[str, Any] | None, *keys: str) -> Optional[str]:
    return to_text(get_prop(props, *keys))

"""Helpers for safe debug logging.

A sync key is the only capability protecting a shared run sheet, and
bookings carry customer contact details. This module masks those before
snapshots are emitted in DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

# Compared lower-cased, so both wire (camelCase) and field names match.
_SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "contact",
        "deliveryaddress",
        "delivery_address",
        "latitude",
        "longitude",
        "synckey",
        "sync_key",
        "apikey",
        "api_key",
        "authorization",
    }
)


def mask_key(key: str | None) -> str:
    """Shorten a sync key to its first four characters for log lines."""
    if not key:
        return "<none>"
    if len(key) <= 4:
        return "****"
    return f"{key[:4]}…"


def redact_for_log(snapshot: Any, *, max_records: int = 20, max_string: int = 120) -> Any:
    """Summarise a wire snapshot for DEBUG logs.

    Each booking keeps its bookkeeping fields (id, sequence, status,
    cartons, timestamps) while contact details and coordinates are masked.
    Free text is cut at *max_string* characters and only the first
    *max_records* bookings are listed.
    """
    if isinstance(snapshot, Mapping):
        return _redact_record(snapshot, max_string)
    if not isinstance(snapshot, Sequence) or isinstance(snapshot, (str, bytes, bytearray)):
        return f"<{type(snapshot).__name__}>"

    shown: list[Any] = [_redact_record(record, max_string) for record in snapshot[:max_records]]
    if len(snapshot) > max_records:
        shown.append(f"<{len(snapshot) - max_records} more>")
    return shown


def _redact_record(record: Any, max_string: int) -> Any:
    if not isinstance(record, Mapping):
        return f"<{type(record).__name__}>"

    redacted: dict[str, Any] = {}
    for key, value in record.items():
        name = str(key)
        if name.lower() in _SENSITIVE_FIELDS:
            redacted[name] = "<redacted>"
        elif isinstance(value, str) and len(value) > max_string:
            redacted[name] = f"{value[:max_string]}…<truncated>"
        elif value is None or isinstance(value, (str, int, float, bool)):
            redacted[name] = value
        else:
            # Booking fields are flat; anything nested is only named.
            redacted[name] = f"<{type(value).__name__}>"
    return redacted

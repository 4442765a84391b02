"""Snapshot (de)serialization shared by local storage and the remote blob."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from swiftrun.exceptions import SwiftRunSyncError
from swiftrun.models.booking import Booking

_logger = logging.getLogger(__name__)


def encode_snapshot(bookings: Iterable[Booking]) -> list[dict[str, Any]]:
    return [booking.to_wire() for booking in bookings]


def decode_snapshot(raw: Any, *, strict: bool = True) -> list[Booking]:
    """Parse a JSON array of bookings.

    Records without a usable ``sequence`` get their 1-based list position,
    matching how the browser app sanitizes older data.

    With ``strict=True`` (remote payloads) any invalid record rejects the
    whole snapshot with :class:`SwiftRunSyncError`, so a malformed blob is
    never partially adopted. With ``strict=False`` (local storage) invalid
    records are skipped and logged.
    """
    if not isinstance(raw, list):
        raise SwiftRunSyncError(f"snapshot must be a JSON array, got {type(raw).__name__}")

    bookings: list[Booking] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            if strict:
                raise SwiftRunSyncError(f"snapshot item {index} is not an object")
            _logger.warning("Skipping non-object snapshot item %d", index)
            continue
        record = dict(item)
        if not record.get("sequence"):
            record["sequence"] = index + 1
        try:
            booking = Booking.model_validate(record)
        except ValidationError as exc:
            if strict:
                raise SwiftRunSyncError(f"snapshot item {index} is not a booking: {exc}") from exc
            _logger.warning("Skipping invalid booking at index %d: %s", index, exc)
            continue
        if booking.id in seen:
            if strict:
                raise SwiftRunSyncError(f"snapshot repeats booking id {booking.id!r}")
            _logger.warning("Skipping duplicate booking id %s", booking.id)
            continue
        seen.add(booking.id)
        bookings.append(booking)
    return bookings

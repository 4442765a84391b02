"""Snapshot events emitted by the booking store.

Every successful mutation produces exactly one event carrying the full
post-mutation snapshot. Persistence, archival and remote push all consume
these events; none of them read the store's internals.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from swiftrun.models._base import utcnow
from swiftrun.models.booking import Booking


class MutationKind(StrEnum):
    ADD = "add"
    UPDATE = "update"
    MOVE = "move"
    TOGGLE = "toggle"
    BULK_DELIVER = "bulk_deliver"
    DELETE = "delete"
    REPLACE = "replace"

    @property
    def is_local(self) -> bool:
        """Whether the mutation originated on this device (and should be pushed)."""
        return self is not MutationKind.REPLACE


class SnapshotEvent(BaseModel):
    """A new authoritative snapshot produced by one store mutation."""

    model_config = ConfigDict(frozen=True)

    kind: MutationKind
    bookings: tuple[Booking, ...]
    booking_ids: tuple[str, ...] = Field(default=(), description="Bookings the mutation touched")
    observed_at: datetime = Field(default_factory=utcnow)

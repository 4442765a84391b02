"""Booking models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import Field, ValidationError, model_validator

from swiftrun.exceptions import SwiftRunValidationError
from swiftrun.models._base import PayloadModel, SwiftRunBaseModel


class BookingStatus(StrEnum):
    """Delivery status. Values match what the browser app writes."""

    PENDING = "Pending"
    ON_BOARD = "On Board"
    DELIVERED = "Delivered"

    @classmethod
    def _missing_(cls, value: object) -> BookingStatus | None:
        # Accept "OnBoard", "on_board", "ON BOARD" and similar spellings.
        if isinstance(value, str):
            folded = value.replace("_", "").replace(" ", "").lower()
            for member in cls:
                if member.value.replace(" ", "").lower() == folded:
                    return member
        return None


class Booking(SwiftRunBaseModel):
    """One delivery task on the run sheet.

    Stored records are lenient (every field has a default) so snapshots
    written by older clients still load. Required-field checks happen on
    :class:`BookingDraft` and :class:`BookingPatch` before anything reaches
    the store.
    """

    id: str
    """Opaque identifier assigned at creation."""
    sequence: int = Field(default=0, ge=0)
    """Manual route position; dense ``1..N`` across active bookings after a move."""
    status: BookingStatus = BookingStatus.PENDING
    pickup_location: str = ""
    customer_name: str = ""
    delivery_address: str = ""
    contact: str = ""
    cartons: int = Field(default=1, ge=0)
    sales_order: str = ""
    purchase_order: str | None = None
    delivery_instructions: str | None = None
    booked_at: str | None = None
    """Set once when the booking is created."""
    delivered_at: str | None = None
    """Set on entering ``Delivered``; cleared when cycling back to ``Pending``."""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.DELIVERED


class BookingDraft(PayloadModel):
    """Form payload for a new booking."""

    pickup_location: str = ""
    customer_name: str = Field(min_length=1)
    delivery_address: str = Field(min_length=1)
    contact: str = Field(min_length=1)
    cartons: int = Field(default=1, ge=1)
    sales_order: str = Field(min_length=1)
    purchase_order: str | None = None
    delivery_instructions: str | None = None
    sequence: int | None = Field(default=None, ge=1)
    latitude: float | None = None
    longitude: float | None = None


class BookingPatch(PayloadModel):
    """Partial edit of an existing booking.

    Only the fields present in the payload are applied. ``id`` and
    ``booked_at`` are not accepted.
    """

    pickup_location: str | None = None
    customer_name: str | None = Field(default=None, min_length=1)
    delivery_address: str | None = Field(default=None, min_length=1)
    contact: str | None = Field(default=None, min_length=1)
    cartons: int | None = Field(default=None, ge=1)
    sales_order: str | None = Field(default=None, min_length=1)
    purchase_order: str | None = None
    delivery_instructions: str | None = None
    sequence: int | None = Field(default=None, ge=1)
    status: BookingStatus | None = None
    delivered_at: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    _REQUIRED: ClassVar[tuple[str, ...]] = ("customer_name", "delivery_address", "contact", "sales_order", "cartons")

    @model_validator(mode="after")
    def _reject_cleared_required(self) -> BookingPatch:
        for name in self._REQUIRED:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly present in the payload, keyed by field name."""
        return self.model_dump(exclude_unset=True)


def _to_validation_error(kind: str, exc: ValidationError) -> SwiftRunValidationError:
    fields = tuple(".".join(str(part) for part in err["loc"]) for err in exc.errors())
    return SwiftRunValidationError(f"invalid {kind}: {', '.join(fields) or exc}", fields=fields)


def validate_draft(payload: BookingDraft | Mapping[str, Any]) -> BookingDraft:
    """Validate a form payload, raising :class:`SwiftRunValidationError`."""
    if isinstance(payload, BookingDraft):
        return payload
    try:
        return BookingDraft.model_validate(dict(payload))
    except ValidationError as exc:
        raise _to_validation_error("booking", exc) from exc


def validate_patch(fields: BookingPatch | Mapping[str, Any]) -> BookingPatch:
    """Validate a partial edit, raising :class:`SwiftRunValidationError`."""
    if isinstance(fields, BookingPatch):
        return fields
    try:
        return BookingPatch.model_validate(dict(fields))
    except ValidationError as exc:
        raise _to_validation_error("booking update", exc) from exc

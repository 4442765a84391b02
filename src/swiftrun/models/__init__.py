"""Run-sheet data models."""

from swiftrun.models._base import format_timestamp, parse_timestamp
from swiftrun.models.advisory import AdvisoryLink, AdvisoryResult
from swiftrun.models.booking import (
    Booking,
    BookingDraft,
    BookingPatch,
    BookingStatus,
    validate_draft,
    validate_patch,
)
from swiftrun.models.customer import Customer, CustomerDraft

__all__ = [
    "AdvisoryLink",
    "AdvisoryResult",
    "Booking",
    "BookingDraft",
    "BookingPatch",
    "BookingStatus",
    "Customer",
    "CustomerDraft",
    "format_timestamp",
    "parse_timestamp",
    "validate_draft",
    "validate_patch",
]

"""Address-book models."""

from __future__ import annotations

from pydantic import Field

from swiftrun.models._base import PayloadModel, SwiftRunBaseModel


class Customer(SwiftRunBaseModel):
    """A saved delivery contact.

    Independent of bookings: a booking copies the name, address and
    contact at creation time and never references a customer by id.
    """

    id: str
    name: str = ""
    address: str = ""
    contact: str = ""


class CustomerDraft(PayloadModel):
    """Payload for saving or editing a contact."""

    name: str = Field(min_length=1)
    address: str = ""
    contact: str = ""

"""Base model and timestamp helpers for run-sheet records.

Every persisted record inherits from :class:`SwiftRunBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase keys written by the
  browser app map onto snake_case fields, and dumps go back out in
  camelCase.
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  strings so the field default is used instead.
* :meth:`SwiftRunBaseModel.to_wire` for the JSON shape used both in local
  storage and in the remote blob.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way bookings store it (ISO-8601, seconds)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp string into an aware UTC datetime.

    Returns ``None`` for missing or unparseable values; callers that sort
    by time treat those as the epoch.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class SwiftRunBaseModel(BaseModel):
    """Base for persisted run-sheet records.

    Handles:
    * camelCase <-> snake_case via ``alias_generator=to_camel``
    * ``None`` and blank strings dropped so field defaults apply
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready camelCase dict, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PayloadModel(BaseModel):
    """Base for inbound intent payloads (form submissions, edits).

    Unlike stored records, payloads are strict: unknown keys are rejected
    and blank strings are kept so required-field checks can see them.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

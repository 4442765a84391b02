"""Read-only projections over a booking snapshot.

Nothing here mutates or caches: every function derives its result from
the bookings passed in, so calling it twice on the same input gives the
same output.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from swiftrun._constants import preset_for_address
from swiftrun.models._base import parse_timestamp
from swiftrun.models.booking import Booking, BookingStatus

_EPOCH = datetime.fromtimestamp(0, tz=UTC)


class PickupCategory(StrEnum):
    SG = "SG"
    WB = "WB"
    RF = "RF"
    OTHER = "Other"


PickupFilter = PickupCategory | Literal["All"]
StatusFilter = BookingStatus | Literal["All"]


def classify(booking: Booking) -> PickupCategory:
    """Map a booking's pickup location onto a depot category.

    Exact match against the preset addresses; anything else is ``Other``.
    """
    preset = preset_for_address(booking.pickup_location)
    if preset is None:
        return PickupCategory.OTHER
    return PickupCategory(preset.id)


@dataclass(frozen=True)
class Projection:
    active: list[Booking]
    history: list[Booking]


def _matches(booking: Booking, pickup_filter: str, status_filter: str) -> bool:
    if pickup_filter != "All" and classify(booking) != pickup_filter:
        return False
    return status_filter == "All" or booking.status == status_filter


def _delivered_sort_key(booking: Booking) -> datetime:
    return parse_timestamp(booking.delivered_at) or _EPOCH


def project(
    bookings: Iterable[Booking],
    pickup_filter: PickupFilter | str = "All",
    status_filter: StatusFilter | str = "All",
) -> Projection:
    """Split bookings into the active run and the delivered history.

    * ``active``: not delivered, ascending by ``sequence``.
    * ``history``: delivered, newest ``delivered_at`` first; missing or
      unparseable times count as the epoch and sort last.

    Both lists honour the pickup-category and status filters. Sorting is
    stable, so ties keep their input order.
    """
    selected = [b for b in bookings if _matches(b, str(pickup_filter), str(status_filter))]
    active = sorted((b for b in selected if b.is_active), key=lambda b: b.sequence)
    history = sorted(
        (b for b in selected if not b.is_active),
        key=_delivered_sort_key,
        reverse=True,
    )
    return Projection(active=active, history=history)


@dataclass(frozen=True)
class RunSheetStats:
    total_deliveries: int
    delivered_count: int
    total_cartons: int


def stats(bookings: Sequence[Booking]) -> RunSheetStats:
    return RunSheetStats(
        total_deliveries=len(bookings),
        delivered_count=sum(1 for b in bookings if b.status == BookingStatus.DELIVERED),
        total_cartons=sum(b.cartons for b in bookings),
    )


@dataclass(frozen=True)
class MapPoint:
    """What the map view needs to place (or geocode) one stop."""

    id: str
    customer_name: str
    delivery_address: str
    latitude: float | None = None
    longitude: float | None = None

    @property
    def needs_geocoding(self) -> bool:
        return self.latitude is None or self.longitude is None


def map_points(bookings: Iterable[Booking]) -> list[MapPoint]:
    return [
        MapPoint(
            id=b.id,
            customer_name=b.customer_name,
            delivery_address=b.delivery_address,
            latitude=b.latitude,
            longitude=b.longitude,
        )
        for b in bookings
    ]

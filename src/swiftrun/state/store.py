"""Deterministic in-memory booking store.

This is the only component allowed to mutate the booking list. Bookings
are kept in an id-keyed arena; ordering is derived from ``sequence`` on
demand, so reordering never shuffles the arena itself.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import datetime
from typing import Any

from swiftrun.models._base import format_timestamp, utcnow
from swiftrun.models.booking import Booking, BookingDraft, BookingPatch, BookingStatus
from swiftrun.state.events import MutationKind, SnapshotEvent
from swiftrun.state.policy import next_status

_logger = logging.getLogger(__name__)

SnapshotListener = Callable[[SnapshotEvent], None]

# Fields that stay fixed for the life of a booking.
_IMMUTABLE_FIELDS = frozenset({"id", "booked_at"})


def _new_booking_id() -> str:
    return secrets.token_hex(6)


class BookingStore:
    """Authoritative booking list.

    Every operation is synchronous and total: unknown ids degrade to a
    no-op (``None``/``False``/empty result) and emit nothing. Successful
    mutations emit one :class:`SnapshotEvent` to each subscriber.
    """

    def __init__(
        self,
        bookings: Iterable[Booking] = (),
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _new_booking_id,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._bookings: dict[str, Booking] = {b.id: b for b in bookings}
        self._listeners: list[SnapshotListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._bookings)

    def __iter__(self) -> Iterator[Booking]:
        return iter(list(self._bookings.values()))

    def __contains__(self, booking_id: object) -> bool:
        return booking_id in self._bookings

    def get(self, booking_id: str) -> Booking | None:
        return self._bookings.get(booking_id)

    def snapshot(self) -> list[Booking]:
        """The full list in storage order. Bookings are immutable, so no copy is needed."""
        return list(self._bookings.values())

    def active(self) -> list[Booking]:
        """Active bookings in route order."""
        return sorted((b for b in self._bookings.values() if b.is_active), key=lambda b: b.sequence)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: MutationKind, booking_ids: Iterable[str]) -> None:
        event = SnapshotEvent(
            kind=kind,
            bookings=tuple(self._bookings.values()),
            booking_ids=tuple(booking_ids),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.warning("Snapshot listener failed for %s", kind.value, exc_info=True)

    def _now(self) -> str:
        return format_timestamp(self._clock())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, draft: BookingDraft) -> Booking:
        """Create a booking from a validated form payload."""
        booking_id = self._id_factory()
        while booking_id in self._bookings:
            booking_id = self._id_factory()

        sequence = draft.sequence
        if not sequence:
            sequence = max((b.sequence for b in self._bookings.values()), default=0) + 1

        booking = Booking.model_validate(
            {
                **draft.model_dump(exclude={"sequence"}),
                "id": booking_id,
                "sequence": sequence,
                "status": BookingStatus.PENDING,
                "booked_at": self._now(),
            }
        )
        self._bookings[booking_id] = booking
        self._emit(MutationKind.ADD, [booking_id])
        return booking

    def update(self, booking_id: str, fields: BookingPatch | Mapping[str, Any]) -> Booking | None:
        """Shallow-merge *fields* into a booking.

        ``sequence`` and ``status`` change only when present in *fields*;
        ``id`` and ``booked_at`` never change.
        """
        current = self._bookings.get(booking_id)
        if current is None:
            return None

        changes = fields.changes() if isinstance(fields, BookingPatch) else dict(fields)
        for name in _IMMUTABLE_FIELDS:
            changes.pop(name, None)

        updated = Booking.model_validate({**current.model_dump(), **changes})
        if updated == current:
            return current
        self._bookings[booking_id] = updated
        self._emit(MutationKind.UPDATE, [booking_id])
        return updated

    def move(self, dragged_id: str, target_id: str) -> bool:
        """Drag-reorder: put *dragged_id* where *target_id* is, then renumber.

        The dragged booking is taken out of the sequence-ordered active
        list and spliced back in at the index the target occupied before
        the removal. All active bookings are then renumbered ``1..N``, so
        dragging a booking onto itself still closes gaps left by deletes.
        Delivered bookings keep their stored sequence.
        """
        ordered = self.active()
        ids = [b.id for b in ordered]
        if dragged_id not in ids or target_id not in ids:
            return False

        dragged_index = ids.index(dragged_id)
        target_index = ids.index(target_id)
        dragged = ordered.pop(dragged_index)
        ordered.insert(target_index, dragged)

        renumbered = False
        for position, booking in enumerate(ordered, start=1):
            if booking.sequence != position:
                self._bookings[booking.id] = booking.model_copy(update={"sequence": position})
                renumbered = True
        # An already dense self-drop changes nothing and must not trigger a push.
        if renumbered:
            self._emit(MutationKind.MOVE, [dragged_id, target_id])
        return True

    def toggle_status(self, booking_id: str) -> Booking | None:
        """Advance a booking one step around the status cycle."""
        current = self._bookings.get(booking_id)
        if current is None:
            return None

        status = next_status(current.status)
        delivered_at = current.delivered_at
        if status == BookingStatus.DELIVERED:
            delivered_at = self._now()
        elif status == BookingStatus.PENDING:
            delivered_at = None

        updated = current.model_copy(update={"status": status, "delivered_at": delivered_at})
        self._bookings[booking_id] = updated
        self._emit(MutationKind.TOGGLE, [booking_id])
        return updated

    def bulk_mark_delivered(self, booking_ids: Iterable[str]) -> list[Booking]:
        """Deliver every active booking in *booking_ids* with one shared timestamp."""
        wanted = set(booking_ids)
        now = self._now()
        delivered: list[Booking] = []
        for booking_id, booking in list(self._bookings.items()):
            if booking_id not in wanted or not booking.is_active:
                continue
            updated = booking.model_copy(update={"status": BookingStatus.DELIVERED, "delivered_at": now})
            self._bookings[booking_id] = updated
            delivered.append(updated)

        if delivered:
            self._emit(MutationKind.BULK_DELIVER, [b.id for b in delivered])
        return delivered

    def delete(self, booking_id: str) -> bool:
        """Remove a booking. Remaining sequences are left as they are."""
        if self._bookings.pop(booking_id, None) is None:
            return False
        self._emit(MutationKind.DELETE, [booking_id])
        return True

    def replace_all(self, bookings: Iterable[Booking]) -> None:
        """Replace the whole list with an inbound snapshot (no per-field merge)."""
        self._bookings = {b.id: b for b in bookings}
        self._emit(MutationKind.REPLACE, list(self._bookings))

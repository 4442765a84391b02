"""Append/overwrite-only ledger of delivered bookings.

The ledger outlives both the store and the remote blob: deleting a
booking, cycling it back to Pending, or losing the remote copy never
removes its archived record. Only :meth:`ArchiveLedger.wipe`, which needs
an explicit confirmation, does.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from swiftrun.exceptions import SwiftRunArchiveWipeDeclined
from swiftrun.models.booking import Booking, BookingStatus

_logger = logging.getLogger(__name__)


class ArchiveLedger:
    """Latest delivered snapshot per booking id."""

    def __init__(self, records: Iterable[Booking] = ()) -> None:
        self._records: dict[str, Booking] = {r.id: r for r in records}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, booking_id: object) -> bool:
        return booking_id in self._records

    def get(self, booking_id: str) -> Booking | None:
        return self._records.get(booking_id)

    def all(self) -> list[Booking]:
        return list(self._records.values())

    def fold(self, snapshot: Iterable[Booking]) -> bool:
        """Upsert every delivered booking in *snapshot*.

        Returns ``True`` when the ledger changed. Folding the same snapshot
        twice is a no-op the second time; bookings absent from the snapshot
        are left alone.
        """
        changed = False
        for booking in snapshot:
            if booking.status != BookingStatus.DELIVERED:
                continue
            if self._records.get(booking.id) == booking:
                continue
            self._records[booking.id] = booking
            changed = True
        return changed

    def wipe(self, confirm: Callable[[], bool]) -> int:
        """Delete every archived record once *confirm* returns ``True``.

        Raises
        ------
        SwiftRunArchiveWipeDeclined
            If the confirmation callable declines. Nothing is removed.
        """
        if not confirm():
            raise SwiftRunArchiveWipeDeclined("archive wipe was not confirmed")
        removed = len(self._records)
        self._records.clear()
        _logger.warning("Archive ledger wiped (%d records removed)", removed)
        return removed

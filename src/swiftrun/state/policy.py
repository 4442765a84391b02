"""Deterministic run-sheet policies.

The status cycle and the rule that decides what to do with a polled
remote snapshot live here so the store and the sync engine share one
definition of each.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from swiftrun.models.booking import Booking, BookingStatus

_STATUS_CYCLE: dict[BookingStatus, BookingStatus] = {
    BookingStatus.PENDING: BookingStatus.ON_BOARD,
    BookingStatus.ON_BOARD: BookingStatus.DELIVERED,
    BookingStatus.DELIVERED: BookingStatus.PENDING,
}


def next_status(status: BookingStatus) -> BookingStatus:
    """Successor in the Pending -> On Board -> Delivered -> Pending cycle."""
    return _STATUS_CYCLE[status]


class RemoteDecision(StrEnum):
    UNCHANGED = "unchanged"
    ADOPT = "adopt"
    GUARD = "guard"


def snapshots_equal(left: Sequence[Booking], right: Sequence[Booking]) -> bool:
    """Structural equality of two snapshots, order included."""
    if len(left) != len(right):
        return False
    return [b.to_wire() for b in left] == [b.to_wire() for b in right]


def decide_remote(local: Sequence[Booking], remote: Sequence[Booking]) -> RemoteDecision:
    """Decide how a polled remote snapshot relates to local state.

    Policy:
    - Structurally equal: nothing to do.
    - Remote empty while local is not: suspected wipe or expiry, keep local
      and re-push it (guard rule). Only the empty case is guarded; a stale
      or partial remote is adopted as-is.
    - Otherwise the remote snapshot wins wholesale.
    """
    if snapshots_equal(local, remote):
        return RemoteDecision.UNCHANGED
    if not remote and local:
        return RemoteDecision.GUARD
    return RemoteDecision.ADOPT

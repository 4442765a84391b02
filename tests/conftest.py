from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from swiftrun.exceptions import SwiftRunBlobNotFoundError, SwiftRunTransportError
from swiftrun.models.booking import Booking, BookingStatus


@dataclass
class FakeBlobBackend:
    """In-memory stand-in for the remote blob store.

    ``fail`` holds operation names ("create", "fetch", "overwrite") that
    should raise a transport error. ``fetch_gate`` lets a test hold a
    fetch open while it mutates local state.
    """

    blobs: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    fail: set[str] = field(default_factory=set)
    fetch_gate: asyncio.Event | None = None
    _counter: int = 0

    def count(self, op: str) -> int:
        return sum(1 for name, _key in self.calls if name == op)

    async def create_blob(self, payload: list[dict[str, Any]]) -> str:
        self.calls.append(("create", ""))
        if "create" in self.fail:
            raise SwiftRunTransportError("POST blob failed: connection refused", endpoint="POST blob")
        self._counter += 1
        key = f"blob-{self._counter:04d}"
        self.blobs[key] = copy.deepcopy(payload)
        return key

    async def fetch_blob(self, key: str) -> Any:
        self.calls.append(("fetch", key))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if "fetch" in self.fail:
            raise SwiftRunTransportError("GET blob timed out", endpoint="GET blob")
        if key not in self.blobs:
            raise SwiftRunBlobNotFoundError(f"Blob not found at {key}", status_code=404, endpoint="GET blob")
        return copy.deepcopy(self.blobs[key])

    async def overwrite_blob(self, key: str, payload: list[dict[str, Any]]) -> None:
        self.calls.append(("overwrite", key))
        if "overwrite" in self.fail:
            raise SwiftRunTransportError("PUT blob failed: HTTP 503", status_code=503, endpoint="PUT blob")
        self.blobs[key] = copy.deepcopy(payload)


def make_booking(
    booking_id: str,
    sequence: int,
    status: BookingStatus = BookingStatus.PENDING,
    **fields: Any,
) -> Booking:
    values: dict[str, Any] = {
        "id": booking_id,
        "sequence": sequence,
        "status": status,
        "customer_name": f"Customer {booking_id}",
        "delivery_address": f"{sequence} Hunter St, Newcastle NSW 2300",
        "contact": "0400 000 000",
        "sales_order": f"SO-{booking_id}",
        "cartons": 1,
        "booked_at": "2026-01-01T08:00:00+00:00",
    }
    if status == BookingStatus.DELIVERED:
        values["delivered_at"] = "2026-01-01T12:00:00+00:00"
    values.update(fields)
    return Booking.model_validate(values)


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def backend() -> FakeBlobBackend:
    return FakeBlobBackend()

from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
from conftest import FakeBlobBackend
from openpyxl import load_workbook

from swiftrun.client import SwiftRunClient
from swiftrun.config import SwiftRunConfig
from swiftrun.exceptions import SwiftRunArchiveWipeDeclined, SwiftRunError, SwiftRunValidationError
from swiftrun.export import HISTORY_COLUMNS
from swiftrun.models.advisory import AdvisoryResult
from swiftrun.models.booking import Booking, BookingStatus
from swiftrun.persistence import LocalStorage
from swiftrun.session import SyncState
from swiftrun.state.snapshot import encode_snapshot


@pytest.fixture
def config(tmp_path: Path) -> SwiftRunConfig:
    return SwiftRunConfig(data_dir=tmp_path, poll_interval=3600.0)


def _client(config: SwiftRunConfig, backend: FakeBlobBackend, **kwargs: Any) -> SwiftRunClient:
    return SwiftRunClient(config, transport=backend, storage=LocalStorage(config.data_dir), **kwargs)


def _payload(name: str = "Acme Pty Ltd", **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "customer_name": name,
        "delivery_address": "1 Hunter St, Newcastle NSW 2300",
        "contact": "0400 000 000",
        "sales_order": "SO-1001",
        "cartons": 2,
    }
    payload.update(overrides)
    return payload


class _StubAdvisor:
    def __init__(self) -> None:
        self.seen: list[list[str]] = []

    async def advise(self, bookings: Sequence[Booking]) -> AdvisoryResult:
        self.seen.append([b.id for b in bookings])
        return AdvisoryResult(text="Go north first.")


# ------------------------------------------------------------------
# Local-only behaviour
# ------------------------------------------------------------------


def test_bookings_persist_across_client_instances(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    first = client.add_booking(_payload("First"))
    second = client.add_booking(_payload("Second"))
    client.move_booking(second.id, first.id)

    reopened = _client(config, backend)

    assert [b.customer_name for b in reopened.project().active] == ["Second", "First"]
    assert reopened.get_booking(first.id) == client.get_booking(first.id)


def test_invalid_booking_is_rejected_and_nothing_is_saved(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)

    with pytest.raises(SwiftRunValidationError) as excinfo:
        client.add_booking(_payload(contact="   "))

    assert "contact" in excinfo.value.fields
    assert client.bookings == []
    assert not LocalStorage(config.data_dir).path_for("swiftRun_bookings").exists()


def test_delivered_bookings_survive_delete_in_archive(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    booking = client.add_booking(_payload())
    client.toggle_status(booking.id)
    client.toggle_status(booking.id)
    assert booking.id in client.archive

    client.delete_booking(booking.id)

    assert client.bookings == []
    reopened = _client(config, backend)
    assert [r.id for r in reopened.archive.all()] == [booking.id]
    assert reopened.archive.get(booking.id).status == BookingStatus.DELIVERED  # type: ignore[union-attr]


def test_wipe_archive_needs_confirmation(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    booking = client.add_booking(_payload())
    client.bulk_mark_delivered([booking.id])

    with pytest.raises(SwiftRunArchiveWipeDeclined):
        client.wipe_archive(lambda: False)
    assert client.wipe_archive(lambda: True) == 1
    assert len(client.archive) == 0

    # The booking itself is still delivered, so reopening folds it back in.
    assert booking.id in _client(config, backend).archive


def test_archive_wipe_sticks_once_booking_is_gone(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    booking = client.add_booking(_payload())
    client.bulk_mark_delivered([booking.id])
    client.delete_booking(booking.id)

    client.wipe_archive(lambda: True)

    assert len(_client(config, backend).archive) == 0


def test_save_to_contacts_dedupes_by_name(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)

    client.add_booking(_payload("Acme Pty Ltd"), save_to_contacts=True)
    client.add_booking(_payload("ACME PTY LTD "), save_to_contacts=True)

    assert [c.name for c in client.customers] == ["Acme Pty Ltd"]
    assert [c.name for c in _client(config, backend).search_customers("acme")] == ["Acme Pty Ltd"]


def test_highlight_clears_when_booking_is_deleted(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    booking = client.add_booking(_payload())

    client.set_highlight(booking.id)
    assert client.highlighted_id == booking.id

    client.delete_booking(booking.id)
    assert client.highlighted_id is None

    client.set_highlight("unknown")
    assert client.highlighted_id is None


def test_map_points_cover_active_run_or_single_booking(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    a = client.add_booking(_payload("A", latitude=-32.9, longitude=151.7))
    b = client.add_booking(_payload("B"))
    client.toggle_status(b.id)
    client.toggle_status(b.id)

    assert [p.id for p in client.map_points()] == [a.id]
    assert [p.id for p in client.map_points(b.id)] == [b.id]
    assert client.map_points("missing") == []


def test_export_csv_prefers_delivered_history(
    config: SwiftRunConfig, backend: FakeBlobBackend, tmp_path: Path
) -> None:
    client = _client(config, backend)
    client.add_booking(_payload("Pending One"))
    done = client.add_booking(_payload("Done One", purchase_order="PO-7"))
    client.bulk_mark_delivered([done.id])

    path = client.export_csv(tmp_path / "out" / "history.csv")

    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["Customer Name"] for row in rows] == ["Done One"]
    assert rows[0]["Purchase Order"] == "PO-7"
    assert rows[0]["Status"] == "Delivered"
    assert len(rows) == 1


def test_export_workbook_writes_delivery_history_sheet(
    config: SwiftRunConfig, backend: FakeBlobBackend, tmp_path: Path
) -> None:
    client = _client(config, backend)
    client.add_booking(_payload("Pending One"))
    done = client.add_booking(_payload("Done One", cartons=4))
    client.bulk_mark_delivered([done.id])

    path = client.export_workbook(tmp_path / "out" / "history.xlsx")

    workbook = load_workbook(path)
    assert workbook.sheetnames == ["Delivery History"]
    rows = list(workbook["Delivery History"].iter_rows(values_only=True))
    assert rows[0] == HISTORY_COLUMNS
    assert len(rows) == 2
    record = dict(zip(HISTORY_COLUMNS, rows[1]))
    assert record["Customer Name"] == "Done One"
    assert record["Cartons"] == 4
    assert record["Status"] == "Delivered"


def test_labels_cover_every_carton_of_a_booking(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)
    booking = client.add_booking(_payload("Acme", cartons=3))

    labels = client.labels(booking.id)

    assert [label.carton_caption for label in labels] == ["1 of 3", "2 of 3", "3 of 3"]
    assert {label.customer_name for label in labels} == {"Acme"}
    assert client.labels("missing") == []


@pytest.mark.asyncio
async def test_route_advice_uses_active_run_in_order(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    advisor = _StubAdvisor()
    client = _client(config, backend, advisor=advisor)
    assert (await client.route_advice()).text == "Add some deliveries to get a smart summary."

    a = client.add_booking(_payload("A"))
    b = client.add_booking(_payload("B"))
    client.move_booking(b.id, a.id)

    result = await client.route_advice()

    assert result.text == "Go north first."
    assert advisor.seen == [[b.id, a.id]]


@pytest.mark.asyncio
async def test_sync_calls_need_an_open_client(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    client = _client(config, backend)

    assert client.sync_status().state == SyncState.DISCONNECTED
    with pytest.raises(SwiftRunError, match="not opened"):
        await client.start_sync()


# ------------------------------------------------------------------
# Sync through the facade
# ------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_share_mutate_and_resume(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    async with _client(config, backend) as client:
        booking = client.add_booking(_payload())
        key = await client.start_sync()
        assert key is not None
        assert LocalStorage(config.data_dir).load_sync_key() == key

        client.toggle_status(booking.id)
        await client.flush()
        assert backend.blobs[key] == encode_snapshot(client.bookings)

    # Another device changed the shared run while this client was closed.
    backend.blobs[key] = [*backend.blobs[key], {"id": "remote-1", "sequence": 2, "customerName": "Remote"}]

    async with _client(config, backend) as client:
        status = client.sync_status()
        assert status.state == SyncState.CONNECTED
        assert status.sync_key == key
        assert [b.id for b in client.bookings] == [booking.id, "remote-1"]

    assert [b.id for b in _client(config, backend).bookings] == [booking.id, "remote-1"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_remote_wipe_after_join_is_guarded_on_poll(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    backend.blobs["shared"] = [{"id": "r1", "sequence": 1, "status": "Pending", "customerName": "Remote"}]
    async with _client(config, backend) as client:
        client.add_booking(_payload("Local only"))
        assert await client.join_sync("shared") is True
        assert [b.id for b in client.bookings] == ["r1"]

        backend.blobs["shared"] = []
        assert (await client.poll_now()).value == "guarded"

        assert [b.id for b in client.bookings] == ["r1"]
        assert backend.blobs["shared"] == encode_snapshot(client.bookings)
        assert client.sync_status().guarded_overwrites == 1


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_join_empty_remote_clears_run_but_keeps_archive(
    config: SwiftRunConfig, backend: FakeBlobBackend
) -> None:
    backend.blobs["fresh"] = []
    async with _client(config, backend) as client:
        done = client.add_booking(_payload("Delivered earlier"))
        client.add_booking(_payload("Still pending"))
        client.bulk_mark_delivered([done.id])
        await client.flush()

        assert await client.join_sync("fresh") is True
        await client.flush()

        assert client.bookings == []
        assert done.id in client.archive
        assert backend.blobs["fresh"] == []
        assert client.sync_status().guarded_overwrites == 0


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_remote_delivery_lands_in_archive(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    backend.blobs["shared"] = [{"id": "r1", "sequence": 1, "customerName": "Remote"}]
    async with _client(config, backend) as client:
        assert await client.join_sync("shared") is True

        backend.blobs["shared"] = [
            {"id": "r1", "sequence": 1, "status": "Delivered", "deliveredAt": "2026-01-01T10:00:00+00:00"}
        ]
        assert (await client.poll_now()).value == "adopted"
        assert "r1" in client.archive

        backend.blobs["shared"] = [{"id": "other", "sequence": 1}]
        await client.poll_now()

    reopened = _client(config, backend)
    assert "r1" in reopened.archive
    assert "r1" not in reopened.store


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_disconnect_forgets_stored_key(config: SwiftRunConfig, backend: FakeBlobBackend) -> None:
    async with _client(config, backend) as client:
        await client.start_sync()
        await client.disconnect_sync()
        assert client.sync_status().state == SyncState.DISCONNECTED

    assert LocalStorage(config.data_dir).load_sync_key() is None
    async with _client(config, backend) as client:
        assert client.sync_status().state == SyncState.DISCONNECTED
    assert backend.count("fetch") == 0


@pytest.mark.asyncio
async def test_sync_disabled_keeps_client_local(tmp_path: Path, backend: FakeBlobBackend) -> None:
    config = SwiftRunConfig(data_dir=tmp_path, poll_interval=3600.0, sync_enabled=False)
    LocalStorage(tmp_path).save_sync_key("stale-key")

    async with _client(config, backend) as client:
        client.add_booking(_payload())
        assert await client.start_sync() is None
        assert await client.join_sync("stale-key") is False

    assert backend.calls == []

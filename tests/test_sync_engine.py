from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
from conftest import FakeBlobBackend, make_booking, wait_for

from swiftrun._client.sync import PollOutcome, SyncEngine
from swiftrun.config import SwiftRunConfig
from swiftrun.models.booking import Booking, BookingStatus
from swiftrun.session import SyncState, SyncStatus
from swiftrun.state.events import SnapshotEvent
from swiftrun.state.snapshot import encode_snapshot
from swiftrun.state.store import BookingStore


@dataclass
class _Harness:
    store: BookingStore
    engine: SyncEngine
    keys: list[str | None] = field(default_factory=list)
    statuses: list[SyncStatus] = field(default_factory=list)
    guarded: list[list[Booking]] = field(default_factory=list)


@asynccontextmanager
async def _harness(
    backend: FakeBlobBackend,
    *bookings: Booking,
    poll_interval: float = 3600.0,
) -> AsyncIterator[_Harness]:
    store = BookingStore(bookings)
    keys: list[str | None] = []
    statuses: list[SyncStatus] = []
    guarded: list[list[Booking]] = []
    engine = SyncEngine(
        config=SwiftRunConfig(poll_interval=poll_interval, data_dir="/tmp/swiftrun-tests"),
        transport=backend,
        snapshot=store.snapshot,
        adopt=store.replace_all,
        on_status=statuses.append,
        on_key_change=keys.append,
        on_guard=guarded.append,
    )

    def _push_local(event: SnapshotEvent) -> None:
        if event.kind.is_local:
            engine.request_push()

    store.subscribe(_push_local)
    harness = _Harness(store=store, engine=engine, keys=keys, statuses=statuses, guarded=guarded)
    try:
        yield harness
    finally:
        await engine.close()


def _wire(*bookings: Booking) -> list[dict[str, object]]:
    return encode_snapshot(bookings)


# ------------------------------------------------------------------
# Bootstrap / join / disconnect
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bootstrap_seeds_remote_with_local_snapshot(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()

        assert key is not None
        assert h.engine.state == SyncState.CONNECTED
        assert h.engine.sync_key == key
        assert backend.blobs[key] == _wire(make_booking("A", 1))
        assert h.keys == [key]
        assert SyncState.BOOTSTRAPPING in [s.state for s in h.statuses]


@pytest.mark.asyncio
async def test_bootstrap_failure_leaves_local_editing_alone(backend: FakeBlobBackend) -> None:
    backend.fail.add("create")
    async with _harness(backend, make_booking("A", 1)) as h:
        assert await h.engine.bootstrap() is None

        assert h.engine.state == SyncState.ERROR
        assert h.engine.sync_key is None
        assert "connection refused" in (h.engine.last_error or "")
        assert h.keys == []

        assert h.store.toggle_status("A") is not None
        await h.engine.drain()
        assert backend.count("overwrite") == 0


@pytest.mark.asyncio
async def test_bootstrap_twice_returns_existing_key(backend: FakeBlobBackend) -> None:
    async with _harness(backend) as h:
        first = await h.engine.bootstrap()
        second = await h.engine.bootstrap()

        assert first == second
        assert backend.count("create") == 1


@pytest.mark.asyncio
async def test_join_adopts_remote_snapshot(backend: FakeBlobBackend) -> None:
    backend.blobs["shared"] = _wire(make_booking("R1", 1), make_booking("R2", 2))
    async with _harness(backend, make_booking("L", 1)) as h:
        assert await h.engine.join("  shared ") is True

        assert h.engine.state == SyncState.CONNECTED
        assert h.engine.sync_key == "shared"
        assert [b.id for b in h.store.snapshot()] == ["R1", "R2"]
        assert h.keys == ["shared"]
        # Adopting is not a local change, so nothing is pushed back.
        await h.engine.drain()
        assert backend.count("overwrite") == 0


@pytest.mark.asyncio
async def test_join_unknown_key_stays_disconnected(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("L", 1)) as h:
        assert await h.engine.join("nope") is False

        assert h.engine.state == SyncState.DISCONNECTED
        assert h.engine.sync_key is None
        assert "not found" in (h.engine.last_error or "")
        assert [b.id for b in h.store.snapshot()] == ["L"]


@pytest.mark.asyncio
async def test_join_empty_key_is_rejected_without_network(backend: FakeBlobBackend) -> None:
    async with _harness(backend) as h:
        assert await h.engine.join("   ") is False

        assert backend.calls == []
        assert h.engine.last_error == "sync key is empty"


@pytest.mark.asyncio
async def test_join_malformed_remote_is_not_adopted(backend: FakeBlobBackend) -> None:
    backend.blobs["bad"] = {"not": "a list"}
    async with _harness(backend, make_booking("L", 1)) as h:
        assert await h.engine.join("bad") is False

        assert h.engine.state == SyncState.DISCONNECTED
        assert [b.id for b in h.store.snapshot()] == ["L"]


@pytest.mark.asyncio
async def test_join_adopts_empty_remote_without_writing(backend: FakeBlobBackend) -> None:
    backend.blobs["wiped"] = []
    async with _harness(backend, make_booking("L", 1)) as h:
        assert await h.engine.join("wiped") is True
        await h.engine.drain()

        assert h.engine.state == SyncState.CONNECTED
        assert h.store.snapshot() == []
        assert backend.blobs["wiped"] == []
        assert backend.count("overwrite") == 0
        assert h.engine.guarded_overwrites == 0
        assert h.guarded == []


@pytest.mark.asyncio
async def test_poll_after_joining_empty_remote_is_unchanged(backend: FakeBlobBackend) -> None:
    backend.blobs["wiped"] = []
    async with _harness(backend, make_booking("L", 1)) as h:
        await h.engine.join("wiped")

        assert await h.engine.poll_once() == PollOutcome.UNCHANGED
        assert backend.count("overwrite") == 0


@pytest.mark.asyncio
async def test_disconnect_forgets_key_and_stops_pushing(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()
        await h.engine.disconnect()

        assert h.engine.state == SyncState.DISCONNECTED
        assert h.engine.sync_key is None
        assert h.keys == [key, None]
        assert await h.engine.poll_once() == PollOutcome.SKIPPED

        h.store.toggle_status("A")
        await h.engine.drain()
        assert backend.count("overwrite") == 0
        # Remote data is left as it was.
        assert backend.blobs[key] == _wire(make_booking("A", 1))


# ------------------------------------------------------------------
# Push
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_local_mutation_pushes_full_snapshot(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1), make_booking("B", 2)) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        h.store.move("B", "A")
        await h.engine.drain()

        assert backend.blobs[key] == encode_snapshot(h.store.snapshot())
        assert backend.count("overwrite") == 1


@pytest.mark.asyncio
async def test_push_failure_keeps_session_and_next_success_clears_error(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        backend.fail.add("overwrite")
        h.store.toggle_status("A")
        await h.engine.drain()

        assert h.engine.state == SyncState.CONNECTED
        assert "HTTP 503" in (h.engine.last_error or "")
        assert h.engine.status().is_online is False
        assert h.store.get("A").status == BookingStatus.ON_BOARD  # type: ignore[union-attr]

        backend.fail.clear()
        h.store.toggle_status("A")
        await h.engine.drain()

        assert h.engine.last_error is None
        assert backend.blobs[key] == encode_snapshot(h.store.snapshot())


@pytest.mark.asyncio
async def test_queued_pushes_coalesce_while_network_is_busy(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1), make_booking("B", 2)) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        backend.fetch_gate = asyncio.Event()
        poll = asyncio.create_task(h.engine.poll_once())
        await wait_for(lambda: backend.count("fetch") == 1)

        first = h.engine.request_push()
        second = h.engine.request_push()
        h.store.toggle_status("A")
        assert first is not None
        assert first is second

        backend.fetch_gate.set()
        assert await poll == PollOutcome.DISCARDED
        await h.engine.drain()

        assert backend.count("overwrite") == 1
        assert backend.blobs[key] == encode_snapshot(h.store.snapshot())


# ------------------------------------------------------------------
# Poll
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_poll_unchanged_when_remote_matches(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        await h.engine.bootstrap()

        assert await h.engine.poll_once() == PollOutcome.UNCHANGED
        assert backend.count("overwrite") == 0


@pytest.mark.asyncio
async def test_poll_adopts_differing_remote_wholesale(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()
        assert key is not None
        backend.blobs[key] = _wire(make_booking("A", 2, BookingStatus.ON_BOARD), make_booking("Z", 1))

        assert await h.engine.poll_once() == PollOutcome.ADOPTED

        assert h.store.snapshot() == [make_booking("A", 2, BookingStatus.ON_BOARD), make_booking("Z", 1)]
        await h.engine.drain()
        assert backend.count("overwrite") == 0


@pytest.mark.asyncio
async def test_poll_with_empty_remote_repushes_local_exactly_once(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1), make_booking("B", 2)) as h:
        key = await h.engine.bootstrap()
        assert key is not None
        local_before = h.store.snapshot()
        backend.blobs[key] = []

        assert await h.engine.poll_once() == PollOutcome.GUARDED

        assert h.store.snapshot() == local_before
        assert backend.count("overwrite") == 1
        assert backend.blobs[key] == encode_snapshot(local_before)
        assert h.engine.guarded_overwrites == 1
        assert [[b.id for b in snap] for snap in h.guarded] == [["A", "B"]]

        assert await h.engine.poll_once() == PollOutcome.UNCHANGED
        assert backend.count("overwrite") == 1


@pytest.mark.asyncio
async def test_poll_with_empty_remote_and_empty_local_is_unchanged(backend: FakeBlobBackend) -> None:
    async with _harness(backend) as h:
        await h.engine.bootstrap()

        assert await h.engine.poll_once() == PollOutcome.UNCHANGED
        assert h.engine.guarded_overwrites == 0


@pytest.mark.asyncio
async def test_poll_failure_records_error_and_recovers(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        await h.engine.bootstrap()

        backend.fail.add("fetch")
        assert await h.engine.poll_once() == PollOutcome.FAILED
        assert h.engine.state == SyncState.CONNECTED
        assert "timed out" in (h.engine.last_error or "")
        assert [b.id for b in h.store.snapshot()] == ["A"]

        backend.fail.clear()
        assert await h.engine.poll_once() == PollOutcome.UNCHANGED
        assert h.engine.last_error is None


@pytest.mark.asyncio
async def test_poll_is_skipped_while_another_operation_is_in_flight(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        await h.engine.bootstrap()

        backend.fetch_gate = asyncio.Event()
        slow = asyncio.create_task(h.engine.poll_once())
        await wait_for(lambda: backend.count("fetch") == 1)

        assert h.engine.in_flight is True
        assert h.engine.status().in_flight is True
        assert await h.engine.poll_once() == PollOutcome.SKIPPED

        backend.fetch_gate.set()
        assert await slow == PollOutcome.UNCHANGED
        assert h.engine.in_flight is False


@pytest.mark.asyncio
async def test_poll_straddling_local_mutation_is_discarded(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        backend.fetch_gate = asyncio.Event()
        poll = asyncio.create_task(h.engine.poll_once())
        await wait_for(lambda: backend.count("fetch") == 1)

        backend.blobs[key] = _wire(make_booking("remote", 1))
        h.store.toggle_status("A")
        backend.fetch_gate.set()

        assert await poll == PollOutcome.DISCARDED
        assert [b.id for b in h.store.snapshot()] == ["A"]

        await h.engine.drain()
        assert backend.blobs[key] == encode_snapshot(h.store.snapshot())


@pytest.mark.asyncio
async def test_poll_result_after_disconnect_is_discarded(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1)) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        backend.fetch_gate = asyncio.Event()
        poll = asyncio.create_task(h.engine.poll_once())
        await wait_for(lambda: backend.count("fetch") == 1)

        backend.blobs[key] = _wire(make_booking("remote", 1))
        await h.engine.disconnect()
        backend.fetch_gate.set()

        assert await poll == PollOutcome.DISCARDED
        assert [b.id for b in h.store.snapshot()] == ["A"]
        assert h.engine.state == SyncState.DISCONNECTED


@pytest.mark.asyncio
async def test_background_poll_adopts_remote_changes(backend: FakeBlobBackend) -> None:
    async with _harness(backend, make_booking("A", 1), poll_interval=0.01) as h:
        key = await h.engine.bootstrap()
        assert key is not None

        backend.blobs[key] = _wire(make_booking("A", 1), make_booking("B", 2))

        await wait_for(lambda: "B" in h.store)
        assert h.engine.state == SyncState.CONNECTED

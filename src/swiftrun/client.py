"""High-level async client for a shared delivery run sheet."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import aiohttp

from swiftrun._client.sync import PollOutcome, SyncEngine
from swiftrun._transport import BlobTransport, HttpBlobTransport
from swiftrun.advisory import GeminiRouteAdvisor, RouteAdvisor, request_route_advice
from swiftrun.archive import ArchiveLedger
from swiftrun.config import SwiftRunConfig
from swiftrun.customers import CustomerBook
from swiftrun.exceptions import SwiftRunError
from swiftrun.export import LabelPage, export_source, history_rows, label_pages, write_csv, write_workbook
from swiftrun.models._base import utcnow
from swiftrun.models.advisory import AdvisoryResult
from swiftrun.models.booking import Booking, BookingDraft, BookingPatch, validate_draft, validate_patch
from swiftrun.models.customer import Customer, CustomerDraft
from swiftrun.persistence import LocalStorage
from swiftrun.session import SyncState, SyncStatus
from swiftrun.state.events import SnapshotEvent
from swiftrun.state.store import BookingStore
from swiftrun.views import MapPoint, Projection, RunSheetStats, map_points, project, stats

_logger = logging.getLogger(__name__)


class SwiftRunClient:
    """Async client for a delivery run sheet.

    The booking store, address book and archive load from local storage
    when the client is constructed and stay usable without any sync
    session. Entering the context opens the HTTP session and, when a sync
    key was saved earlier, rejoins it.

    Usage::

        async with SwiftRunClient(config) as client:
            booking = client.add_booking({...})
            key = await client.start_sync()
    """

    def __init__(
        self,
        config: SwiftRunConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: BlobTransport | None = None,
        storage: LocalStorage | None = None,
        advisor: RouteAdvisor | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_sync_status: Callable[[SyncStatus], None] | None = None,
    ) -> None:
        self._config = config or SwiftRunConfig.from_env()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._advisor = advisor
        self._on_sync_status = on_sync_status
        self._storage = storage or LocalStorage(self._config.data_dir)

        self._store = BookingStore(self._storage.load_bookings(), clock=clock)
        self._customers = CustomerBook(self._storage.load_customers())
        self._archive = ArchiveLedger(self._storage.load_archive())
        # Bookings delivered before the ledger existed are archived on load.
        if self._archive.fold(self._store.snapshot()):
            self._storage.save_archive(self._archive.all())
        self._store.subscribe(self._on_snapshot)

        self._engine: SyncEngine | None = None
        self._highlighted_id: str | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SwiftRunClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpBlobTransport(self._config, self._http_session)
        if self._advisor is None and self._config.advisory_api_key and self._http_session is not None:
            self._advisor = GeminiRouteAdvisor(self._config, self._http_session)

        self._engine = SyncEngine(
            config=self._config,
            transport=self._transport,
            snapshot=self._store.snapshot,
            adopt=self._store.replace_all,
            on_status=self._on_sync_status,
            on_key_change=self._storage.save_sync_key,
            logger=_logger,
        )

        stored_key = self._storage.load_sync_key()
        if stored_key and self._config.sync_enabled and self._config.resume_sync:
            await self._engine.join(stored_key)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._engine is not None:
            await self._engine.close()
            self._engine = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_engine(self) -> SyncEngine:
        if self._engine is None:
            raise SwiftRunError("Client not opened. Use 'async with SwiftRunClient(...) as client:'")
        return self._engine

    def _on_snapshot(self, event: SnapshotEvent) -> None:
        bookings = list(event.bookings)
        self._storage.save_bookings(bookings)
        if self._archive.fold(bookings):
            self._storage.save_archive(self._archive.all())
        if self._highlighted_id is not None and self._highlighted_id not in self._store:
            self._highlighted_id = None
        if event.kind.is_local and self._engine is not None:
            self._engine.request_push()

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    @property
    def config(self) -> SwiftRunConfig:
        return self._config

    @property
    def store(self) -> BookingStore:
        return self._store

    @property
    def bookings(self) -> list[Booking]:
        return self._store.snapshot()

    def get_booking(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def add_booking(
        self,
        payload: BookingDraft | Mapping[str, Any],
        *,
        save_to_contacts: bool = False,
    ) -> Booking:
        """Validate a form payload and add it to the run.

        Raises
        ------
        SwiftRunValidationError
            If a required field is missing or blank. Nothing is stored.
        """
        draft = validate_draft(payload)
        booking = self._store.add(draft)
        if save_to_contacts:
            self.save_customer(
                {"name": draft.customer_name, "address": draft.delivery_address, "contact": draft.contact}
            )
        return booking

    def update_booking(self, booking_id: str, fields: BookingPatch | Mapping[str, Any]) -> Booking | None:
        patch = validate_patch(fields)
        return self._store.update(booking_id, patch)

    def move_booking(self, dragged_id: str, target_id: str) -> bool:
        return self._store.move(dragged_id, target_id)

    def toggle_status(self, booking_id: str) -> Booking | None:
        return self._store.toggle_status(booking_id)

    def bulk_mark_delivered(self, booking_ids: Iterable[str]) -> list[Booking]:
        return self._store.bulk_mark_delivered(booking_ids)

    def delete_booking(self, booking_id: str) -> bool:
        return self._store.delete(booking_id)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def project(self, pickup_filter: str = "All", status_filter: str = "All") -> Projection:
        return project(self._store.snapshot(), pickup_filter, status_filter)

    def stats(self) -> RunSheetStats:
        return stats(self._store.snapshot())

    def map_points(self, booking_id: str | None = None) -> list[MapPoint]:
        """Stops for the map: one booking, or the whole active run in order."""
        if booking_id is not None:
            booking = self._store.get(booking_id)
            return map_points([booking]) if booking is not None else []
        return map_points(self._store.active())

    @property
    def highlighted_id(self) -> str | None:
        return self._highlighted_id

    def set_highlight(self, booking_id: str | None) -> None:
        """Called back by the map view; unknown ids clear the highlight."""
        self._highlighted_id = booking_id if booking_id in self._store else None

    def export_rows(self) -> list[dict[str, str | int]]:
        projection = self.project()
        return history_rows(export_source(projection.history, self._store.snapshot()))

    def export_workbook(self, path: Path) -> Path:
        """Write the delivery history to an ``.xlsx`` workbook at *path*."""
        return write_workbook(path, self.export_rows())

    def export_csv(self, path: Path) -> Path:
        return write_csv(path, self.export_rows())

    def labels(self, booking_id: str) -> list[LabelPage]:
        """Carton labels for one booking; empty for an unknown id."""
        booking = self._store.get(booking_id)
        return list(label_pages(booking)) if booking is not None else []

    async def route_advice(self) -> AdvisoryResult:
        return await request_route_advice(self._advisor, self.project().active)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    @property
    def archive(self) -> ArchiveLedger:
        return self._archive

    def wipe_archive(self, confirm: Callable[[], bool]) -> int:
        removed = self._archive.wipe(confirm)
        self._storage.save_archive(self._archive.all())
        return removed

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    @property
    def customers(self) -> list[Customer]:
        return self._customers.all()

    def search_customers(self, term: str) -> list[Customer]:
        return self._customers.search(term)

    def save_customer(self, payload: CustomerDraft | Mapping[str, Any]) -> Customer | None:
        customer = self._customers.save(payload)
        if customer is not None:
            self._storage.save_customers(self._customers.all())
        return customer

    def update_customer(self, customer_id: str, payload: CustomerDraft | Mapping[str, Any]) -> Customer | None:
        customer = self._customers.update(customer_id, payload)
        if customer is not None:
            self._storage.save_customers(self._customers.all())
        return customer

    def delete_customer(self, customer_id: str) -> bool:
        deleted = self._customers.delete(customer_id)
        if deleted:
            self._storage.save_customers(self._customers.all())
        return deleted

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_status(self) -> SyncStatus:
        if self._engine is None:
            return SyncStatus(state=SyncState.DISCONNECTED)
        return self._engine.status()

    async def start_sync(self) -> str | None:
        """Share this run sheet: create a remote blob and return its key."""
        if not self._config.sync_enabled:
            _logger.info("Sync disabled by configuration")
            return None
        return await self._require_engine().bootstrap()

    async def join_sync(self, key: str) -> bool:
        """Replace the local run with the shared one identified by *key*."""
        if not self._config.sync_enabled:
            _logger.info("Sync disabled by configuration")
            return False
        return await self._require_engine().join(key)

    async def disconnect_sync(self) -> None:
        await self._require_engine().disconnect()

    async def poll_now(self) -> PollOutcome:
        return await self._require_engine().poll_once()

    async def flush(self) -> None:
        """Wait until scheduled pushes have completed."""
        if self._engine is not None:
            await self._engine.drain()

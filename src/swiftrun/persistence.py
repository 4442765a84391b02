"""File-based local storage for the run sheet's keyed blobs."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from swiftrun._constants import ARCHIVE_KEY, BOOKINGS_KEY, CUSTOMERS_KEY, SYNC_KEY_KEY
from swiftrun.models.booking import Booking
from swiftrun.models.customer import Customer
from swiftrun.state.snapshot import decode_snapshot, encode_snapshot

_logger = logging.getLogger(__name__)


class LocalStorage:
    """One JSON file per key under a data directory.

    Mirrors the browser app's ``localStorage`` layout: bookings, customers
    and the archive ledger are independent arrays, each read once at
    startup and rewritten after every change to its owner.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def read(self, key: str) -> Any:
        """Return the decoded blob, or ``None`` if it is missing or unreadable."""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError):
            _logger.warning("Failed to read %s from %s", key, path, exc_info=True)
            return None

    def write(self, key: str, data: Any) -> None:
        """Atomically replace the blob for *key*."""
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _read_list(self, key: str) -> list[Any]:
        data = self.read(key)
        if data is None:
            return []
        if not isinstance(data, list):
            _logger.warning("Ignoring %s: expected a JSON array, got %s", key, type(data).__name__)
            return []
        return data

    def load_bookings(self) -> list[Booking]:
        return decode_snapshot(self._read_list(BOOKINGS_KEY), strict=False)

    def save_bookings(self, bookings: list[Booking]) -> None:
        self.write(BOOKINGS_KEY, encode_snapshot(bookings))

    def load_archive(self) -> list[Booking]:
        return decode_snapshot(self._read_list(ARCHIVE_KEY), strict=False)

    def save_archive(self, records: list[Booking]) -> None:
        self.write(ARCHIVE_KEY, encode_snapshot(records))

    def load_customers(self) -> list[Customer]:
        customers: list[Customer] = []
        for item in self._read_list(CUSTOMERS_KEY):
            if isinstance(item, dict) and item.get("id"):
                customers.append(Customer.model_validate(item))
            else:
                _logger.warning("Skipping invalid customer record: %r", item)
        return customers

    def save_customers(self, customers: list[Customer]) -> None:
        self.write(CUSTOMERS_KEY, [c.to_wire() for c in customers])

    def load_sync_key(self) -> str | None:
        value = self.read(SYNC_KEY_KEY)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def save_sync_key(self, key: str | None) -> None:
        if key is None:
            self.delete(SYNC_KEY_KEY)
        else:
            self.write(SYNC_KEY_KEY, key)

"""Internal constants shared across the library."""

from __future__ import annotations

from dataclasses import dataclass

BLOB_BASE_URL = "https://jsonblob.com/api/jsonBlob"
ADVISORY_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
USER_AGENT = "swiftrun/1.0"

# Local storage keys, kept identical to the browser app so exported
# localStorage dumps can be dropped straight into the data directory.
BOOKINGS_KEY = "swiftRun_bookings"
CUSTOMERS_KEY = "swiftRun_customers"
ARCHIVE_KEY = "swiftRun_archive"
SYNC_KEY_KEY = "swiftRun_syncKey"


@dataclass(frozen=True)
class PickupPreset:
    """A depot the run can start from."""

    id: str
    name: str
    address: str


PICKUP_PRESETS: tuple[PickupPreset, ...] = (
    PickupPreset("SG", "Sandgate (SG)", "58 Maitland Road, Sandgate NSW 2304"),
    PickupPreset("WB", "Warners Bay (WB)", "391 Hillsborough Rd, Warners Bay NSW 2282"),
    PickupPreset(
        "RF",
        "Rutherford (RF)",
        "Homemaker Centre, Building B/366 New England Hwy, Rutherford NSW 2320",
    ),
)


def preset_for_address(address: str) -> PickupPreset | None:
    """Return the preset whose address matches *address* exactly."""
    for preset in PICKUP_PRESETS:
        if preset.address == address:
            return preset
    return None

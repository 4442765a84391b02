"""swiftrun - Delivery run sheet with shared-key remote sync."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("swiftrun")
except PackageNotFoundError:
    __version__ = "0+local"
from swiftrun._client.sync import PollOutcome, SyncEngine
from swiftrun.archive import ArchiveLedger
from swiftrun.client import SwiftRunClient
from swiftrun.config import SwiftRunConfig
from swiftrun.customers import CustomerBook
from swiftrun.exceptions import (
    SwiftRunArchiveWipeDeclined,
    SwiftRunBlobNotFoundError,
    SwiftRunConfigError,
    SwiftRunError,
    SwiftRunSyncError,
    SwiftRunTransportError,
    SwiftRunValidationError,
)
from swiftrun.models import (
    AdvisoryLink,
    AdvisoryResult,
    Booking,
    BookingDraft,
    BookingPatch,
    BookingStatus,
    Customer,
    CustomerDraft,
)
from swiftrun.persistence import LocalStorage
from swiftrun.session import SyncSession, SyncState, SyncStatus
from swiftrun.state.store import BookingStore
from swiftrun.views import MapPoint, PickupCategory, Projection, RunSheetStats, classify, project

__all__ = [
    "__version__",
    "AdvisoryLink",
    "AdvisoryResult",
    "ArchiveLedger",
    "Booking",
    "BookingDraft",
    "BookingPatch",
    "BookingStatus",
    "BookingStore",
    "Customer",
    "CustomerBook",
    "CustomerDraft",
    "LocalStorage",
    "MapPoint",
    "PickupCategory",
    "PollOutcome",
    "Projection",
    "RunSheetStats",
    "SwiftRunArchiveWipeDeclined",
    "SwiftRunBlobNotFoundError",
    "SwiftRunClient",
    "SwiftRunConfig",
    "SwiftRunConfigError",
    "SwiftRunError",
    "SwiftRunSyncError",
    "SwiftRunTransportError",
    "SwiftRunValidationError",
    "SyncEngine",
    "SyncSession",
    "SyncState",
    "SyncStatus",
    "classify",
    "project",
]

"""Custom exception hierarchy for swiftrun."""

from __future__ import annotations


class SwiftRunError(Exception):
    """Base exception for all swiftrun errors."""


class SwiftRunConfigError(SwiftRunError):
    """Invalid or missing configuration."""


class SwiftRunValidationError(SwiftRunError):
    """A booking or customer payload is missing a required field.

    Raised before the payload reaches the store, so a rejected intent
    never leaves a partial mutation behind.
    """

    def __init__(self, message: str, *, fields: tuple[str, ...] = ()) -> None:
        self.fields = fields
        super().__init__(message)


class SwiftRunTransportError(SwiftRunError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SwiftRunBlobNotFoundError(SwiftRunTransportError):
    """The remote blob for a sync key does not exist (expired or mistyped)."""


class SwiftRunSyncError(SwiftRunError):
    """Sync protocol failure.

    Covers remote payloads that are not a booking snapshot and sync
    operations attempted without an active session.
    """


class SwiftRunArchiveWipeDeclined(SwiftRunError):
    """Archive wipe was requested but not confirmed."""

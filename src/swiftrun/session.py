"""Sync session state for a shared run sheet."""

from __future__ import annotations

import time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SyncState(StrEnum):
    DISCONNECTED = "disconnected"
    BOOTSTRAPPING = "bootstrapping"
    CONNECTED = "connected"
    ERROR = "error"


class SyncSession(BaseModel):
    """Mutable state of one connected sync session.

    Parameters
    ----------
    sync_key : str
        Identifier of the remote blob. Anyone holding it can read and
        overwrite the run sheet.
    last_error : str or None
        Message of the most recent failed network operation, cleared by
        the next success.
    in_flight : bool
        Whether a push or poll is currently talking to the remote store.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) of session creation.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    sync_key: str = Field(min_length=1)
    last_error: str | None = None
    in_flight: bool = False
    created_at: float = Field(default_factory=time.monotonic)

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at


class SyncStatus(BaseModel):
    """Read-only view of the sync engine for status indicators."""

    model_config = ConfigDict(frozen=True)

    state: SyncState
    sync_key: str | None = None
    last_error: str | None = None
    in_flight: bool = False
    guarded_overwrites: int = 0

    @property
    def is_online(self) -> bool:
        return self.state == SyncState.CONNECTED and self.last_error is None

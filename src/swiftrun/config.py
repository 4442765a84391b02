"""Client configuration for swiftrun."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from swiftrun._constants import ADVISORY_BASE_URL, BLOB_BASE_URL
from swiftrun.exceptions import SwiftRunConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env_key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise SwiftRunConfigError(f"{env_key} must be a number, got {value!r}") from exc


def _default_data_dir() -> Path:
    return Path.home() / ".swiftrun"


@dataclasses.dataclass(frozen=True)
class SwiftRunConfig:
    """Client configuration.

    Parameters
    ----------
    blob_base_url : str
        Collection URL of the remote JSON blob store. ``POST`` creates a
        blob, ``GET``/``PUT`` on ``{blob_base_url}/{key}`` read and
        overwrite it.
    data_dir : Path
        Directory holding the local booking, customer, archive and
        sync-key blobs.
    poll_interval : float
        Seconds between remote polls while a sync session is connected.
    request_timeout : float
        Total timeout in seconds for a single remote blob request.
    sync_enabled : bool
        Allow remote sync at all. When disabled the client stays
        local-only and sync calls are ignored.
    resume_sync : bool
        Rejoin the sync key stored locally when the client opens.
    advisory_api_key : str or None
        API key for the route advisory service. ``None`` disables it.
    advisory_model : str
        Model name used for route advice.
    advisory_base_url : str
        Base URL of the advisory REST API.
    """

    blob_base_url: str = BLOB_BASE_URL
    data_dir: Path = dataclasses.field(default_factory=_default_data_dir)
    poll_interval: float = 10.0
    request_timeout: float = 8.0
    sync_enabled: bool = True
    resume_sync: bool = True
    advisory_api_key: str | None = None
    advisory_model: str = "gemini-2.5-flash"
    advisory_base_url: str = ADVISORY_BASE_URL

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise SwiftRunConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.request_timeout <= 0:
            raise SwiftRunConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if not self.blob_base_url.strip():
            raise SwiftRunConfigError("blob_base_url must not be empty")
        # Accept plain strings for data_dir without giving up frozen=True.
        object.__setattr__(self, "data_dir", Path(self.data_dir).expanduser())
        object.__setattr__(self, "blob_base_url", self.blob_base_url.rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> SwiftRunConfig:
        """Create configuration from environment variables.

        Reads the optional ``SWIFTRUN_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SwiftRunConfig
            Populated configuration.

        Raises
        ------
        SwiftRunConfigError
            If a numeric variable does not parse.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SWIFTRUN_BLOB_BASE_URL": "blob_base_url",
            "SWIFTRUN_DATA_DIR": "data_dir",
            "SWIFTRUN_ADVISORY_API_KEY": "advisory_api_key",
            "SWIFTRUN_ADVISORY_MODEL": "advisory_model",
            "SWIFTRUN_ADVISORY_BASE_URL": "advisory_base_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields are parsed separately so bad values fail loudly.
        for env_key, field_name in (
            ("SWIFTRUN_POLL_INTERVAL", "poll_interval"),
            ("SWIFTRUN_REQUEST_TIMEOUT", "request_timeout"),
        ):
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_float(env_key, val)

        if "sync_enabled" not in overrides:
            config_kwargs["sync_enabled"] = _env_bool(env.get("SWIFTRUN_SYNC_ENABLED"), True)
        if "resume_sync" not in overrides:
            config_kwargs["resume_sync"] = _env_bool(env.get("SWIFTRUN_RESUME_SYNC"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

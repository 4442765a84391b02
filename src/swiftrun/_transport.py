"""HTTP transport for the remote JSON blob store."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from swiftrun._constants import USER_AGENT
from swiftrun._redact import mask_key, redact_for_log
from swiftrun.config import SwiftRunConfig
from swiftrun.exceptions import SwiftRunBlobNotFoundError, SwiftRunTransportError

_logger = logging.getLogger(__name__)


class BlobTransport(Protocol):
    """Structural transport interface used by the sync engine.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpBlobTransport`) concrete.
    """

    async def create_blob(self, payload: list[dict[str, Any]]) -> str:
        ...

    async def fetch_blob(self, key: str) -> Any:
        ...

    async def overwrite_blob(self, key: str, payload: list[dict[str, Any]]) -> None:
        ...


def _key_from_location(location: str) -> str:
    return location.rstrip("/").rsplit("/", 1)[-1]


class HttpBlobTransport:
    """JSON blob store client.

    ``POST {base}`` creates a blob and answers with its id in the
    ``Location`` header; ``GET``/``PUT {base}/{id}`` read and overwrite it.
    Every request is bounded by ``config.request_timeout``.
    """

    def __init__(self, config: SwiftRunConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        endpoint: str,
        payload: list[dict[str, Any]] | None = None,
    ) -> tuple[int, str, Any]:
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        _logger.debug("%s %s", method, endpoint)
        if payload is not None:
            _logger.debug("Request body: %s", redact_for_log(payload))

        try:
            async with self._http.request(
                method,
                url,
                data=body,
                headers=self._headers(),
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                headers = resp.headers
                status = resp.status
        except asyncio.TimeoutError as exc:
            raise SwiftRunTransportError(
                f"{method} {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise SwiftRunTransportError(
                f"{method} {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if status == 404:
            raise SwiftRunBlobNotFoundError(
                f"Blob not found at {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise SwiftRunTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )
        return status, text, headers

    def _blob_url(self, key: str) -> str:
        return f"{self._config.blob_base_url}/{key}"

    async def create_blob(self, payload: list[dict[str, Any]]) -> str:
        """Create a blob seeded with *payload* and return its key."""
        _status, text, headers = await self._request(
            "POST",
            self._config.blob_base_url,
            endpoint="POST blob",
            payload=payload,
        )

        key = headers.get("x-jsonblob-id") or ""
        if not key:
            location = headers.get("Location") or ""
            if location:
                key = _key_from_location(location)
        if not key and text:
            # Some blob stores echo the new id in the body instead.
            try:
                body_json = json.loads(text)
            except json.JSONDecodeError:
                body_json = None
            if isinstance(body_json, dict):
                key = str(body_json.get("id") or "")

        if not key:
            raise SwiftRunTransportError("Blob store did not return a blob id", endpoint="POST blob")
        _logger.debug("Created blob %s", mask_key(key))
        return key

    async def fetch_blob(self, key: str) -> Any:
        """Return the decoded JSON stored under *key*."""
        endpoint = f"GET blob {mask_key(key)}"
        _status, text, _headers = await self._request("GET", self._blob_url(key), endpoint=endpoint)
        if not text.strip():
            return []
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SwiftRunTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

    async def overwrite_blob(self, key: str, payload: list[dict[str, Any]]) -> None:
        """Replace the blob under *key* with *payload*."""
        endpoint = f"PUT blob {mask_key(key)}"
        await self._request("PUT", self._blob_url(key), endpoint=endpoint, payload=payload)

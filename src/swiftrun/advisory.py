"""Route advice from a generative model.

Advice is best-effort: it reads the active run and returns text plus
citation links. Any failure becomes a fallback message and never touches
the booking store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import aiohttp

from swiftrun._constants import USER_AGENT
from swiftrun.config import SwiftRunConfig
from swiftrun.exceptions import SwiftRunConfigError, SwiftRunTransportError
from swiftrun.models.advisory import AdvisoryLink, AdvisoryResult
from swiftrun.models.booking import Booking

_logger = logging.getLogger(__name__)

EMPTY_RUN_MESSAGE = "Add some deliveries to get a smart summary."
FAILURE_MESSAGE = "Error getting AI optimization. Please check your connection and API key."
NO_TEXT_MESSAGE = "Could not generate optimization notes."

SYSTEM_INSTRUCTION = (
    "You are an expert logistics coordinator. Use Google Maps to verify address validity "
    "and proximity to provide an optimized delivery route. If an address seems invalid or "
    "hard to find, mention it."
)


class RouteAdvisor(Protocol):
    async def advise(self, bookings: Sequence[Booking]) -> AdvisoryResult:
        ...


def build_route_prompt(bookings: Sequence[Booking]) -> str:
    lines = [
        f"{index}. {b.customer_name} at {b.delivery_address} ({b.cartons} cartons)"
        for index, b in enumerate(bookings, start=1)
    ]
    return (
        "Analyze the following delivery list and provide a logical delivery sequence recommendation.\n"
        "Use Google Maps to verify address locations and optimize the route based on real-world geography.\n"
        "Explain why this sequence makes sense.\n\n"
        "Current Deliveries:\n" + "\n".join(lines)
    )


def parse_advice_response(body: dict[str, Any]) -> AdvisoryResult:
    """Extract text and grounding links from a ``generateContent`` response."""
    candidates = body.get("candidates") or []
    first = candidates[0] if candidates and isinstance(candidates[0], dict) else {}

    parts = (first.get("content") or {}).get("parts") or []
    text = "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict)).strip()

    links: list[AdvisoryLink] = []
    chunks = (first.get("groundingMetadata") or {}).get("groundingChunks") or []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        maps = chunk.get("maps")
        web = chunk.get("web")
        if isinstance(maps, dict) and maps.get("uri"):
            links.append(AdvisoryLink(title=maps.get("title") or "View Location", uri=maps["uri"]))
        elif isinstance(web, dict) and web.get("uri"):
            links.append(AdvisoryLink(title=web.get("title") or "Web Source", uri=web["uri"]))

    return AdvisoryResult(text=text or NO_TEXT_MESSAGE, links=links)


class GeminiRouteAdvisor:
    """Route advisor backed by the Generative Language REST API."""

    def __init__(self, config: SwiftRunConfig, http_session: aiohttp.ClientSession) -> None:
        if not config.advisory_api_key:
            raise SwiftRunConfigError("advisory_api_key is required for route advice")
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=max(config.request_timeout, 30.0))

    async def advise(self, bookings: Sequence[Booking]) -> AdvisoryResult:
        endpoint = f"models/{self._config.advisory_model}:generateContent"
        url = f"{self._config.advisory_base_url.rstrip('/')}/{endpoint}"
        body = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": build_route_prompt(bookings)}]}],
            "tools": [{"googleMaps": {}}, {"googleSearch": {}}],
        }
        headers = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            "x-goog-api-key": self._config.advisory_api_key or "",
        }
        _logger.debug("POST %s (%d stops)", endpoint, len(bookings))
        try:
            async with self._http.post(url, json=body, headers=headers, timeout=self._timeout) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise SwiftRunTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
                payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise SwiftRunTransportError(f"{endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise SwiftRunTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

        if not isinstance(payload, dict):
            raise SwiftRunTransportError(f"Unexpected response from {endpoint}", endpoint=endpoint)
        return parse_advice_response(payload)


async def request_route_advice(advisor: RouteAdvisor | None, bookings: Sequence[Booking]) -> AdvisoryResult:
    """Ask *advisor* about the active run, never raising."""
    if not bookings:
        return AdvisoryResult(text=EMPTY_RUN_MESSAGE)
    if advisor is None:
        return AdvisoryResult(text=FAILURE_MESSAGE, ok=False)
    try:
        return await advisor.advise(bookings)
    except Exception:
        _logger.warning("Route advice failed", exc_info=True)
        return AdvisoryResult(text=FAILURE_MESSAGE, ok=False)

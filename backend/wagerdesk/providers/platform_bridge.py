"""
backend/wagerdesk/providers/platform_bridge.py

Purpose:
    Outbound client for the chat platform bot. The core needs exactly two
    capabilities from it: create an isolated space visible only to an access
    set, and post a message into such a space. The core never renders UI and
    never speaks the platform's wire protocol.

Dependencies:
    - httpx (via wagerdesk.providers.http_client)
    - wagerdesk.config
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from wagerdesk.config import settings
from wagerdesk.providers.http_client import CircuitBreaker, CircuitOpenError, ResilientClient

logger = logging.getLogger("wagerdesk.platform_bridge")


class PlatformUnavailable(Exception):
    """The platform bridge failed, answered with an error or is not configured."""


class PlatformBridge:
    """Client for the bot's bridge API: isolated checkout spaces and messages into them."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = ResilientClient(
            name="platform_bridge",
            timeout=settings.PLATFORM_CALL_TIMEOUT_SECONDS,
            max_retries=settings.PLATFORM_MAX_RETRIES,
            base_delay=settings.PLATFORM_RETRY_BASE_DELAY,
            circuit=CircuitBreaker(
                failure_threshold=settings.PLATFORM_CIRCUIT_FAILURE_THRESHOLD,
                recovery_timeout=settings.PLATFORM_CIRCUIT_RECOVERY_SECONDS,
            ),
            transport=transport,
        )

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        if not self._base_url:
            raise PlatformUnavailable("PLATFORM_BRIDGE_URL is not configured")
        try:
            resp = await self._client.post(f"{self._base_url}{path}", json=payload, headers=self._headers())
        except (CircuitOpenError, httpx.HTTPError) as exc:
            raise PlatformUnavailable(str(exc)) from exc
        if resp.status_code >= 400:
            raise PlatformUnavailable(f"platform bridge answered {resp.status_code} on {path}")
        return resp

    async def create_isolated_space(
        self, match_id: str, access_set: list[str], *, name: str, topic: str,
    ) -> str:
        resp = await self._post(
            "/spaces",
            {"match_id": match_id, "name": name, "topic": topic, "access_set": access_set},
        )
        try:
            body = resp.json()
        except ValueError as exc:
            raise PlatformUnavailable("platform bridge returned a non-JSON body") from exc
        space_ref = body.get("space_ref") if isinstance(body, dict) else None
        if not space_ref:
            raise PlatformUnavailable("platform bridge response has no space_ref")
        logger.info("Isolated space %s created for match %s", space_ref, match_id)
        return str(space_ref)

    async def notify_space(self, space_ref: str, message: str) -> None:
        await self._post(f"/spaces/{space_ref}/messages", {"content": message})

    async def aclose(self) -> None:
        await self._client.aclose()


platform_bridge = PlatformBridge(settings.PLATFORM_BRIDGE_URL, settings.PLATFORM_BRIDGE_TOKEN)

"""
backend/tests/test_platform_bridge.py

Purpose:
    Outbound bridge contract against httpx.MockTransport: request shape,
    error mapping and the circuit breaker.
"""

from __future__ import annotations

import json

import httpx
import pytest

from wagerdesk.config import settings
from wagerdesk.providers.platform_bridge import PlatformBridge, PlatformUnavailable


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "PLATFORM_MAX_RETRIES", 1)
    monkeypatch.setattr(settings, "PLATFORM_RETRY_BASE_DELAY", 0.0)
    monkeypatch.setattr(settings, "PLATFORM_CIRCUIT_FAILURE_THRESHOLD", 2)


@pytest.mark.asyncio
async def test_create_isolated_space_posts_access_set():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"space_ref": "chan-99"})

    bridge = PlatformBridge("http://bridge.local/", "tok", transport=httpx.MockTransport(handler))
    space_ref = await bridge.create_isolated_space("m1", ["b", "u1", "u2"], name="checkout-m1", topic="t")
    await bridge.aclose()

    assert space_ref == "chan-99"
    assert str(requests[0].url) == "http://bridge.local/spaces"
    assert requests[0].headers["Authorization"] == "Bearer tok"
    body = json.loads(requests[0].content)
    assert body == {"match_id": "m1", "name": "checkout-m1", "topic": "t", "access_set": ["b", "u1", "u2"]}


@pytest.mark.asyncio
async def test_notify_space_posts_content():
    seen: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(204)

    bridge = PlatformBridge("http://bridge.local", transport=httpx.MockTransport(handler))
    await bridge.notify_space("chan-1", "hello")
    await bridge.aclose()

    assert seen == [("/spaces/chan-1/messages", {"content": "hello"})]


@pytest.mark.asyncio
async def test_error_statuses_and_bad_bodies_raise_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            return httpx.Response(403, json={"error": "missing permission"})
        return httpx.Response(200, json={"unexpected": True})

    bridge = PlatformBridge("http://bridge.local", transport=httpx.MockTransport(handler))
    with pytest.raises(PlatformUnavailable):
        await bridge.create_isolated_space("m1", ["b"], name="n", topic="t")
    with pytest.raises(PlatformUnavailable):
        await bridge.notify_space("chan-1", "hello")
    await bridge.aclose()


@pytest.mark.asyncio
async def test_unconfigured_bridge_is_unavailable():
    bridge = PlatformBridge("")
    with pytest.raises(PlatformUnavailable):
        await bridge.notify_space("chan-1", "hello")
    await bridge.aclose()


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    bridge = PlatformBridge("http://bridge.local", transport=httpx.MockTransport(handler))
    for _ in range(2):
        with pytest.raises(PlatformUnavailable):
            await bridge.notify_space("chan-1", "hello")
    assert bridge.circuit_open is True
    calls_before = calls

    with pytest.raises(PlatformUnavailable):
        await bridge.notify_space("chan-1", "hello")
    assert calls == calls_before
    await bridge.aclose()

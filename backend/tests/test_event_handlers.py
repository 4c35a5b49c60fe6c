"""
backend/tests/test_event_handlers.py

Purpose:
    Subscribers: roster.completed provisions the checkout space, checkout
    updates are posted into it, and failed notifications are audited without
    touching the match.
"""

from __future__ import annotations

import asyncio

import pytest

from wagerdesk.models.wager_match import MatchConfiguration, MatchState
from wagerdesk.services import admission_service
from wagerdesk.services.event_bus import InMemoryEventBus
from wagerdesk.services.event_handlers import register_event_handlers
from wagerdesk.services.event_handlers.checkout_handlers import handle_roster_completed
from wagerdesk.services.event_handlers.notify_handlers import notify_checkout_space
from wagerdesk.services.event_models import (
    CheckoutCreatedEvent,
    MarkedPaidEvent,
    MatchResolvedEvent,
    RosterCompletedEvent,
    ValueProposedEvent,
)
from wagerdesk.services.match_store import match_store
from wagerdesk.services.publish_service import publish_match


async def _full_match() -> str:
    match = await publish_match("guild-1", "broker", MatchConfiguration(), ["chan-1"])
    await admission_service.claim(match["_id"], "u1")
    await admission_service.claim(match["_id"], "u2")
    return match["_id"]


@pytest.mark.asyncio
async def test_roster_completed_provisions_checkout(fake_db, fake_platform, published_events):
    match_id = await _full_match()

    await handle_roster_completed(
        RosterCompletedEvent(source="test", match_id=match_id, participant_count=2)
    )
    await handle_roster_completed(
        RosterCompletedEvent(source="test", match_id=match_id, participant_count=2)
    )

    assert len(fake_platform.created) == 1
    assert (await match_store.get_match(match_id))["state"] == MatchState.checkout_active.value


@pytest.mark.asyncio
async def test_roster_completed_swallows_platform_outage(fake_db, fake_platform, published_events):
    match_id = await _full_match()
    fake_platform.fail = True

    await handle_roster_completed(
        RosterCompletedEvent(source="test", match_id=match_id, participant_count=2)
    )

    assert (await match_store.get_match(match_id))["state"] == MatchState.open.value
    assert fake_db.audit_logs.docs[-1]["action"] == "checkout_create_error"


@pytest.mark.asyncio
async def test_notifications_go_to_the_checkout_space(fake_db, fake_platform, published_events):
    match_id = await _full_match()
    await match_store.record_checkout(match_id, "space-7")

    await notify_checkout_space(
        CheckoutCreatedEvent(source="test", match_id=match_id, space_ref="space-7", access_set=["broker"])
    )
    await notify_checkout_space(ValueProposedEvent(source="test", match_id=match_id, value="30"))
    await notify_checkout_space(MarkedPaidEvent(source="test", match_id=match_id))
    await notify_checkout_space(
        MatchResolvedEvent(source="test", match_id=match_id, designator="B", winner_id="u2")
    )

    assert [ref for ref, _ in fake_platform.messages] == ["space-7"] * 4
    assert "30" in fake_platform.messages[1][1]
    assert "side B won" in fake_platform.messages[3][1]


@pytest.mark.asyncio
async def test_notification_skipped_without_space(fake_db, fake_platform):
    match_id = await _full_match()

    sent = await notify_checkout_space(MarkedPaidEvent(source="test", match_id=match_id))

    assert sent is False
    assert fake_platform.messages == []


@pytest.mark.asyncio
async def test_failed_notification_is_audited_only(fake_db, fake_platform, published_events):
    match_id = await _full_match()
    await match_store.record_checkout(match_id, "space-7")
    fake_platform.fail = True

    sent = await notify_checkout_space(MarkedPaidEvent(source="test", match_id=match_id))

    assert sent is False
    last = fake_db.audit_logs.docs[-1]
    assert last["action"] == "notify_error"
    assert "match.marked_paid" in last["detail"]
    assert (await match_store.get_match(match_id))["state"] == MatchState.checkout_active.value


@pytest.mark.asyncio
async def test_registered_handlers_drive_checkout_through_the_bus(fake_db, fake_platform, monkeypatch):
    from wagerdesk.services import admission_service as admission_module
    from wagerdesk.services import checkout_service

    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, default_concurrency=1, error_buffer_size=10)
    monkeypatch.setattr(admission_module, "event_bus", bus)
    monkeypatch.setattr(checkout_service, "event_bus", bus)
    register_event_handlers(bus)
    await bus.start()
    try:
        match_id = await _full_match()
        for _ in range(50):
            if fake_platform.messages:
                break
            await asyncio.sleep(0.01)
    finally:
        await bus.stop()

    assert len(fake_platform.created) == 1
    assert fake_platform.messages[0][0] == "space-1"
    assert (await match_store.get_match(match_id))["checkout_space_ref"] == "space-1"

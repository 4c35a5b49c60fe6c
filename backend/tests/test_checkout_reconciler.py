"""
backend/tests/test_checkout_reconciler.py

Purpose:
    The reconciler re-derives missing checkouts from stored rosters.
"""

from __future__ import annotations

import pytest

from wagerdesk.config import settings
from wagerdesk.models.wager_match import MatchConfiguration, MatchState
from wagerdesk.services import admission_service
from wagerdesk.services.match_store import match_store
from wagerdesk.services.publish_service import publish_match
from wagerdesk.workers.checkout_reconciler import reconcile_checkouts


async def _match_with(users: tuple[str, ...]) -> str:
    match = await publish_match("guild-1", "broker", MatchConfiguration(), ["chan-1"])
    for user_id in users:
        await admission_service.claim(match["_id"], user_id)
    return match["_id"]


@pytest.mark.asyncio
async def test_reconcile_creates_missing_checkouts_only(fake_db, fake_platform, published_events):
    full = await _match_with(("u1", "u2"))
    half = await _match_with(("u3",))

    stats = await reconcile_checkouts()

    assert stats["scanned"] == 1
    assert stats["created"] == 1
    assert (await match_store.get_match(full))["state"] == MatchState.checkout_active.value
    assert (await match_store.get_match(half))["state"] == MatchState.open.value

    again = await reconcile_checkouts()
    assert again["scanned"] == 0
    assert again["created"] == 0
    assert len(fake_platform.created) == 1


@pytest.mark.asyncio
async def test_abandoned_offers_do_not_starve_full_matches(
    fake_db, fake_platform, published_events, monkeypatch,
):
    monkeypatch.setattr(settings, "CHECKOUT_RECONCILE_BATCH_SIZE", 3)
    for _ in range(3):
        await _match_with(())
    await _match_with(("u9",))
    full = await _match_with(("u1", "u2"))

    stats = await reconcile_checkouts()

    assert stats["scanned"] == 1
    assert stats["created"] == 1
    assert (await match_store.get_match(full))["state"] == MatchState.checkout_active.value
    assert fake_platform.created[0]["match_id"] == full


@pytest.mark.asyncio
async def test_full_roster_query_skips_matches_with_a_space(fake_db, fake_platform, published_events):
    done = await _match_with(("u1", "u2"))
    await reconcile_checkouts()
    pending = await _match_with(("u3", "u4"))

    candidates = await match_store.find_open_with_full_roster(limit=10)

    assert [m["_id"] for m in candidates] == [pending]
    assert "roster" not in candidates[0]
    assert done != pending


@pytest.mark.asyncio
async def test_reconcile_counts_platform_failures(fake_db, fake_platform, published_events):
    await _match_with(("u1", "u2"))
    fake_platform.fail = True

    stats = await reconcile_checkouts()

    assert stats["failed"] == 1
    assert stats["created"] == 0

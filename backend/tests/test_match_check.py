"""
backend/tests/test_match_check.py

Purpose:
    Integrity scan over stored matches, participants and audit entries.
"""

from __future__ import annotations

import pytest

from wagerdesk.checks.match_check import MatchIntegrityCheck
from wagerdesk.models.wager_match import MatchConfiguration
from wagerdesk.services import admission_service
from wagerdesk.services.checkout_service import ensure_checkout
from wagerdesk.services.publish_service import publish_match


@pytest.mark.asyncio
async def test_consistent_store_is_healthy(fake_db, fake_platform, published_events):
    match = await publish_match("guild-1", "broker", MatchConfiguration(), ["c1"])
    await admission_service.claim(match["_id"], "u1")
    await admission_service.claim(match["_id"], "u2")
    await ensure_checkout(match["_id"])

    report = await MatchIntegrityCheck.run()

    assert report["status"] == "HEALTHY"
    assert report["details"]["by_state"] == {"checkout_active": 1}


@pytest.mark.asyncio
async def test_violations_are_reported(fake_db, published_events):
    match = await publish_match("guild-1", "broker", MatchConfiguration(), ["c1"])
    fake_db.wager_matches.docs[0]["state"] = "resolved"
    for user_id in ("u1", "u2", "u3"):
        fake_db.wager_participants.docs.append({"_id": user_id, "match_id": match["_id"], "user_id": user_id})
    fake_db.audit_logs.docs.append({"_id": "dup", "seq": 1, "action": "x"})

    report = await MatchIntegrityCheck.run()

    assert report["status"] == "DEGRADED"
    problems = report["violations"][match["_id"]]
    assert "3 participants" in problems
    assert "resolved match has no checkout space" in problems
    assert "resolved match has no outcome" in problems
    assert report["details"]["duplicate_seqs"] == [1]

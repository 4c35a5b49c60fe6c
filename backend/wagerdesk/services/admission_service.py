"""
backend/wagerdesk/services/admission_service.py

Purpose:
    Atomic claim/leave of the two participant slots of a wager match.

    The read-count-check-insert-recount sequence of a claim runs while holding
    the per-match lock and inside one transaction together with its audit
    entry, so two concurrent claims can never both see a free slot. A claim
    that completes the roster reports it in its result and publishes
    `roster.completed` only after commit; provisioning the checkout space is a
    separate, idempotent follow-up (see checkout_service.ensure_checkout).

Dependencies:
    - wagerdesk.services.match_store
    - wagerdesk.services.audit_service
    - wagerdesk.services.event_bus
"""

from __future__ import annotations

import logging

from pymongo.errors import DuplicateKeyError

import wagerdesk.database as _db
from wagerdesk.models.wager_match import (
    MAX_PARTICIPANTS,
    ClaimResult,
    LeaveResult,
    MatchState,
)
from wagerdesk.services import audit_service
from wagerdesk.services.event_bus import event_bus
from wagerdesk.services.event_models import RosterCompletedEvent
from wagerdesk.services.match_errors import MatchFull, MatchNotFound, MatchNotOpen
from wagerdesk.services.match_locks import match_locks
from wagerdesk.services.match_store import match_store

logger = logging.getLogger("wagerdesk.admission_service")


async def claim(match_id: str, user_id: str) -> ClaimResult:
    """Claim one of the two slots of an open match.

    Returns `accepted` with the post-insert count, or `already_claimed` with the
    unchanged count when the user already holds a slot (safe to retry).

    Raises:
        MatchNotFound: no such match.
        MatchNotOpen: the match has left the open state.
        MatchFull: both slots are held by other users.
    """
    async with match_locks.hold(match_id):
        try:
            async with _db.transaction() as session:
                match = await match_store.get_match(match_id, session=session)
                if not match:
                    raise MatchNotFound()
                if match["state"] != MatchState.open.value:
                    raise MatchNotOpen()

                existing = await match_store.get_participant(match_id, user_id, session=session)
                count = await match_store.count_participants(match_id, session=session)
                if existing:
                    return ClaimResult(outcome="already_claimed", count=count)
                if count >= MAX_PARTICIPANTS:
                    raise MatchFull()

                await match_store.insert_participant(match_id, user_id, session=session)
                new_count = await match_store.count_participants(match_id, session=session)
                await audit_service.append_audit(
                    match_id=match_id,
                    action=audit_service.PARTICIPANT_ADDED,
                    actor_id=user_id,
                    detail=f"count={new_count}",
                    session=session,
                )
        except DuplicateKeyError:
            # Unique (match_id, user_id) index caught a row this process did not see.
            count = await match_store.count_participants(match_id)
            return ClaimResult(outcome="already_claimed", count=count)

    roster_complete = new_count == MAX_PARTICIPANTS
    logger.info("User %s claimed match %s (count=%d)", user_id, match_id, new_count)
    if roster_complete:
        await event_bus.publish(
            RosterCompletedEvent(source="admission", match_id=match_id, participant_count=new_count)
        )
    return ClaimResult(outcome="accepted", count=new_count, roster_complete=roster_complete)


async def leave(match_id: str, user_id: str) -> LeaveResult:
    """Give up a slot while the match is still open.

    Leaving after checkout started is not possible; the broker resolves the
    match through the lifecycle instead.
    """
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await match_store.get_match(match_id, session=session)
            if not match:
                raise MatchNotFound()
            if match["state"] != MatchState.open.value:
                raise MatchNotOpen("Checkout already started; leaving is no longer possible.")

            removed = await match_store.delete_participant(match_id, user_id, session=session)
            count = await match_store.count_participants(match_id, session=session)
            if not removed:
                return LeaveResult(outcome="not_participant", count=count)

            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.PARTICIPANT_REMOVED,
                actor_id=user_id,
                detail=f"count={count}",
                session=session,
            )

    logger.info("User %s left match %s (count=%d)", user_id, match_id, count)
    return LeaveResult(outcome="removed", count=count)

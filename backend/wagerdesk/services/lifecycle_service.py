"""
backend/wagerdesk/services/lifecycle_service.py

Purpose:
    Broker and participant actions of the checkout phase:

        open -> checkout_active -> payment_confirmed -> resolved

    Every operation validates, in order: match exists, actor role, not
    resolved, state legal for the operation. State change and audit entry
    commit together under the per-match lock. Notifications into the checkout
    space are follow-ups published after commit.

Dependencies:
    - wagerdesk.services.match_store
    - wagerdesk.services.audit_service
    - wagerdesk.services.event_bus
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import wagerdesk.database as _db
from wagerdesk.models.wager_match import LifecycleResult, MatchState
from wagerdesk.services import audit_service
from wagerdesk.services.event_bus import event_bus
from wagerdesk.services.event_models import (
    MarkedPaidEvent,
    MatchResolvedEvent,
    ValueProposedEvent,
)
from wagerdesk.services.match_errors import (
    AlreadyResolved,
    Forbidden,
    IllegalState,
    InvalidOutcome,
    MatchNotFound,
)
from wagerdesk.services.match_locks import match_locks
from wagerdesk.services.match_store import match_store
from wagerdesk.utils import utcnow

logger = logging.getLogger("wagerdesk.lifecycle_service")

SLOT_DESIGNATORS = ("A", "B")


async def _load(match_id: str, session: Any) -> dict:
    match = await match_store.get_match(match_id, session=session)
    if not match:
        raise MatchNotFound()
    return match


def _require_broker(match: dict, actor_id: str, action: str) -> None:
    if actor_id != match["broker_id"]:
        raise Forbidden(f"Only the broker can {action}.")


def _require_state(match: dict, allowed: Iterable[MatchState], action: str) -> None:
    if match["state"] == MatchState.resolved.value:
        raise AlreadyResolved()
    if match["state"] not in {s.value for s in allowed}:
        raise IllegalState(f"Cannot {action} while the match is {match['state']}.")


def resolve_designator(outcome: str, participants: list[dict]) -> tuple[str, str]:
    """Map an outcome to (designator, winner_id).

    Accepts a slot designator ("A" = first to join, "B" = second) or the user
    id of one of the participants.
    """
    user_ids = [p["user_id"] for p in participants]
    normalized = outcome.strip()
    if normalized.upper() in SLOT_DESIGNATORS:
        idx = SLOT_DESIGNATORS.index(normalized.upper())
        if idx < len(user_ids):
            return SLOT_DESIGNATORS[idx], user_ids[idx]
    elif normalized in user_ids:
        return SLOT_DESIGNATORS[user_ids.index(normalized)], normalized
    raise InvalidOutcome(f"Outcome must be one of {', '.join(SLOT_DESIGNATORS)} or a participant id.")


async def propose_value(match_id: str, actor_id: str, value: str) -> LifecycleResult:
    """Broker proposes the wager value. Re-proposals allowed until resolved."""
    value = value.strip()
    if not value:
        raise ValueError("Proposed value must not be blank.")
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await _load(match_id, session)
            _require_broker(match, actor_id, "propose a value")
            _require_state(
                match, (MatchState.checkout_active, MatchState.payment_confirmed), "propose a value",
            )
            await match_store.set_fields(match_id, {"proposed_value": value}, session=session)
            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.PROPOSED_VALUE,
                actor_id=actor_id,
                detail=f"value={value}",
                session=session,
            )

    logger.info("Broker %s proposed value %s on match %s", actor_id, value, match_id)
    await event_bus.publish(ValueProposedEvent(source="lifecycle", match_id=match_id, value=value))
    return LifecycleResult(state=MatchState(match["state"]), detail=f"Proposed {value}.")


async def confirm_payment(match_id: str, actor_id: str) -> LifecycleResult:
    """A participant confirms they sent their stake. Idempotent."""
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await _load(match_id, session)
            participant = await match_store.get_participant(match_id, actor_id, session=session)
            if not participant:
                raise Forbidden("You are not a participant of this match.")
            _require_state(match, (MatchState.checkout_active,), "confirm payment")
            if participant.get("confirmed"):
                return LifecycleResult(
                    state=MatchState(match["state"]), changed=False, detail="Already confirmed.",
                )
            await match_store.set_confirmed(match_id, actor_id, session=session)
            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.PARTICIPANT_CONFIRMED,
                actor_id=actor_id,
                session=session,
            )

    logger.info("Participant %s confirmed payment on match %s", actor_id, match_id)
    return LifecycleResult(state=MatchState(match["state"]), detail="Confirmation recorded.")


async def mark_paid(match_id: str, actor_id: str) -> LifecycleResult:
    """Broker verified the payments: checkout_active -> payment_confirmed."""
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await _load(match_id, session)
            _require_broker(match, actor_id, "mark the match as paid")
            _require_state(match, (MatchState.checkout_active,), "mark as paid")
            moved = await match_store.transition_state(
                match_id,
                (MatchState.checkout_active,),
                MatchState.payment_confirmed,
                fields={"paid_at": utcnow()},
                session=session,
            )
            if not moved:
                raise IllegalState()
            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.MARKED_PAID,
                actor_id=actor_id,
                session=session,
            )

    logger.info("Match %s marked paid by %s", match_id, actor_id)
    await event_bus.publish(MarkedPaidEvent(source="lifecycle", match_id=match_id))
    return LifecycleResult(state=MatchState.payment_confirmed, detail="Marked as paid.")


async def resolve(match_id: str, actor_id: str, outcome: str) -> LifecycleResult:
    """Broker records the winner. Terminal: nothing leaves `resolved`."""
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await _load(match_id, session)
            _require_broker(match, actor_id, "resolve the match")
            allowed = (MatchState.checkout_active, MatchState.payment_confirmed)
            _require_state(match, allowed, "resolve")
            participants = await match_store.list_participants(match_id, session=session)
            designator, winner_id = resolve_designator(outcome, participants)
            moved = await match_store.transition_state(
                match_id,
                allowed,
                MatchState.resolved,
                fields={
                    "outcome": {"designator": designator, "winner_id": winner_id},
                    "resolved_at": utcnow(),
                },
                session=session,
            )
            if not moved:
                raise IllegalState()
            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.RESOLVED,
                actor_id=actor_id,
                detail=f"winner={designator} user={winner_id}",
                session=session,
            )

    logger.info("Match %s resolved by %s: %s (%s) won", match_id, actor_id, designator, winner_id)
    await event_bus.publish(
        MatchResolvedEvent(source="lifecycle", match_id=match_id, designator=designator, winner_id=winner_id)
    )
    return LifecycleResult(state=MatchState.resolved, detail=f"Resolved: {designator} won.")

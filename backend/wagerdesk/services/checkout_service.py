"""
backend/wagerdesk/services/checkout_service.py

Purpose:
    Provision the private checkout space of a match whose roster is complete.

    ensure_checkout is idempotent and single-flight per match: the trigger
    (roster.completed event, reconciler job, manual re-check) is at-least-once,
    the platform call happens at most once per successful provisioning. The
    platform call runs without the per-match store lock; the space ref and the
    state change are committed only after the space exists.

Dependencies:
    - wagerdesk.providers.platform_bridge
    - wagerdesk.services.match_store
    - wagerdesk.services.audit_service
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import wagerdesk.database as _db
from wagerdesk.config import settings
from wagerdesk.models.wager_match import MAX_PARTICIPANTS, CheckoutResult, MatchState
from wagerdesk.providers.platform_bridge import PlatformUnavailable, platform_bridge
from wagerdesk.services import audit_service
from wagerdesk.services.event_bus import event_bus
from wagerdesk.services.event_models import CheckoutCreatedEvent
from wagerdesk.services.match_errors import ExternalUnavailable, MatchNotFound
from wagerdesk.services.match_locks import checkout_locks, match_locks
from wagerdesk.services.match_store import match_store

logger = logging.getLogger("wagerdesk.checkout_service")

_PROVISIONABLE_STATES = {MatchState.open.value, MatchState.checkout_active.value}


def build_access_set(broker_id: str, participant_ids: list[str]) -> list[str]:
    """Broker first, then participants in join order, without duplicates."""
    access_set: list[str] = []
    for user_id in [broker_id, *participant_ids]:
        if user_id not in access_set:
            access_set.append(user_id)
    return access_set


def checkout_space_name(match_id: str) -> str:
    return f"checkout-{match_id[:6]}"


async def ensure_checkout(
    match_id: str, *, actor_id: Optional[str] = None, trigger: str = "roster_completed",
) -> CheckoutResult:
    """Create the checkout space once the roster holds exactly two participants.

    Raises:
        MatchNotFound: no such match.
        ExternalUnavailable: the platform failed or timed out; the match stays
            open and a later call retries safely.
    """
    async with checkout_locks.hold(match_id):
        match = await match_store.get_match(match_id)
        if not match:
            raise MatchNotFound()
        if match.get("checkout_space_ref"):
            return CheckoutResult(outcome="already_exists", space_ref=match["checkout_space_ref"])

        participants = await match_store.list_participants(match_id)
        participant_ids = [p["user_id"] for p in participants]
        if match["state"] not in _PROVISIONABLE_STATES:
            return CheckoutResult(outcome="not_ready", reason=f"state is {match['state']}")
        if len(participant_ids) != MAX_PARTICIPANTS:
            return CheckoutResult(
                outcome="not_ready", reason=f"roster has {len(participant_ids)} of {MAX_PARTICIPANTS}",
            )

        access_set = build_access_set(match["broker_id"], participant_ids)
        try:
            space_ref = await asyncio.wait_for(
                platform_bridge.create_isolated_space(
                    match_id,
                    access_set,
                    name=checkout_space_name(match_id),
                    topic=f"Private checkout for match {match_id}: only the 2 participants and the broker.",
                ),
                timeout=settings.PLATFORM_CALL_TIMEOUT_SECONDS,
            )
        except (PlatformUnavailable, asyncio.TimeoutError) as exc:
            reason = str(exc) or "timed out"
            logger.warning("Checkout creation failed for match %s (%s): %s", match_id, trigger, reason)
            async with _db.transaction() as session:
                await audit_service.append_audit(
                    match_id=match_id,
                    action=audit_service.CHECKOUT_CREATE_ERROR,
                    actor_id=actor_id,
                    detail=f"trigger={trigger} error={reason}",
                    session=session,
                )
            raise ExternalUnavailable(f"Could not create the private checkout: {reason}") from exc

        async with match_locks.hold(match_id):
            async with _db.transaction() as session:
                current = await match_store.get_match(match_id, session=session)
                roster = [
                    p["user_id"] for p in await match_store.list_participants(match_id, session=session)
                ]
                committed = False
                if current and roster == participant_ids:
                    committed = await match_store.record_checkout(match_id, space_ref, session=session)
                if committed:
                    await audit_service.append_audit(
                        match_id=match_id,
                        action=audit_service.CHECKOUT_CREATED,
                        actor_id=actor_id,
                        detail=f"channel={space_ref}",
                        session=session,
                    )
                else:
                    await audit_service.append_audit(
                        match_id=match_id,
                        action=audit_service.CHECKOUT_DISCARDED,
                        actor_id=actor_id,
                        detail=(
                            f"channel={space_ref} roster changed while creating "
                            f"cleanup=external access={','.join(access_set)}"
                        ),
                        session=session,
                    )

    if not committed:
        logger.warning(
            "Discarded checkout space %s for match %s: roster changed; the space still exists "
            "on the platform and must be removed externally (access=%s)",
            space_ref, match_id, access_set,
        )
        return CheckoutResult(outcome="not_ready", reason="roster changed while the space was created")

    logger.info("Checkout %s created for match %s (%s)", space_ref, match_id, trigger)
    await event_bus.publish(
        CheckoutCreatedEvent(source="checkout", match_id=match_id, space_ref=space_ref, access_set=access_set)
    )
    return CheckoutResult(outcome="created", space_ref=space_ref)

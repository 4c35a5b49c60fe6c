"""
backend/wagerdesk/services/event_handlers/notify_handlers.py

Purpose:
    Subscribers that post checkout-phase updates into the match's private
    space. Notification is best effort: the lifecycle change it reports is
    already committed, so a failure is logged and audited, never rolled back.

Dependencies:
    - wagerdesk.providers.platform_bridge
    - wagerdesk.services.match_store
    - wagerdesk.services.audit_service
"""

from __future__ import annotations

import asyncio
import logging

import wagerdesk.database as _db
from wagerdesk.config import settings
from wagerdesk.providers.platform_bridge import PlatformUnavailable, platform_bridge
from wagerdesk.services import audit_service
from wagerdesk.services.event_models import BaseEvent
from wagerdesk.services.match_store import match_store

logger = logging.getLogger("wagerdesk.event_handlers.notify")


def render_message(event: BaseEvent) -> str:
    if event.event_type == "checkout.created":
        return (
            "Private checkout created. Only the 2 participants and the broker can see this space. "
            "The broker will propose the value here."
        )
    if event.event_type == "match.value_proposed":
        return f"The broker proposed the value: {event.value}. Participants, confirm once you have paid."
    if event.event_type == "match.marked_paid":
        return "The broker marked the match as paid. You may proceed."
    if event.event_type == "match.resolved":
        return f"Match resolved: side {event.designator} won."
    return ""


async def notify_checkout_space(event: BaseEvent) -> bool:
    """Post the message for `event` into the match's checkout space."""
    message = render_message(event)
    if not message:
        return False
    space_ref = getattr(event, "space_ref", None)
    if not space_ref:
        match = await match_store.get_match(event.match_id)
        space_ref = match.get("checkout_space_ref") if match else None
    if not space_ref:
        logger.debug("No checkout space for match %s; skipping %s", event.match_id, event.event_type)
        return False

    try:
        await asyncio.wait_for(
            platform_bridge.notify_space(space_ref, message),
            timeout=settings.PLATFORM_CALL_TIMEOUT_SECONDS,
        )
    except (PlatformUnavailable, asyncio.TimeoutError) as exc:
        reason = str(exc) or "timed out"
        logger.warning(
            "Notification %s for match %s failed: %s", event.event_type, event.match_id, reason,
        )
        async with _db.transaction() as session:
            await audit_service.append_audit(
                match_id=event.match_id,
                action=audit_service.NOTIFY_ERROR,
                detail=f"event={event.event_type} error={reason}",
                session=session,
            )
        return False
    return True


async def handle_checkout_notification(event: BaseEvent) -> None:
    await notify_checkout_space(event)

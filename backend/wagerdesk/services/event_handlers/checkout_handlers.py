"""
backend/wagerdesk/services/event_handlers/checkout_handlers.py

Purpose:
    Subscriber that turns a completed roster into a checkout space. Safe to
    receive the same event more than once: ensure_checkout is idempotent.

Dependencies:
    - wagerdesk.services.checkout_service
    - wagerdesk.services.event_models
"""

from __future__ import annotations

import logging

from wagerdesk.services.checkout_service import ensure_checkout
from wagerdesk.services.event_models import BaseEvent
from wagerdesk.services.match_errors import ExternalUnavailable

logger = logging.getLogger("wagerdesk.event_handlers.checkout")


async def handle_roster_completed(event: BaseEvent) -> None:
    match_id = str(getattr(event, "match_id", "") or "")
    if not match_id:
        return
    try:
        result = await ensure_checkout(match_id, trigger="roster_completed")
    except ExternalUnavailable as exc:
        # Already audited; the reconciler retries from stored state.
        logger.warning("Checkout for match %s deferred: %s", match_id, exc.detail)
        return
    logger.info(
        "Processed roster.completed for match_id=%s outcome=%s space=%s",
        match_id, result.outcome, result.space_ref,
    )

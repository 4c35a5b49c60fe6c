"""Checkout reconciler.

Re-drives ensure_checkout for open matches that hold a full roster but no
checkout space. Covers roster.completed events lost to a restart, a disabled
event bus, or a platform outage during the first attempt.
"""

import logging

from wagerdesk.config import settings
from wagerdesk.services.checkout_service import ensure_checkout
from wagerdesk.services.match_errors import MatchError
from wagerdesk.services.match_store import match_store

logger = logging.getLogger("wagerdesk.checkout_reconciler")


async def reconcile_checkouts() -> dict:
    """Run one reconciliation pass. Returns per-outcome counters."""
    stats = {"scanned": 0, "created": 0, "not_ready": 0, "already_exists": 0, "failed": 0}
    candidates = await match_store.find_open_with_full_roster(settings.CHECKOUT_RECONCILE_BATCH_SIZE)
    for match in candidates:
        stats["scanned"] += 1
        match_id = match["_id"]
        try:
            # Re-checks the roster under the checkout lock; a leave since the
            # query comes back as not_ready.
            result = await ensure_checkout(match_id, trigger="reconciler")
        except MatchError as exc:
            stats["failed"] += 1
            logger.warning("Reconcile failed for match %s: %s", match_id, exc.detail)
            continue
        stats[result.outcome] += 1

    if stats["created"] or stats["failed"]:
        logger.info("Checkout reconcile pass: %s", stats)
    return stats

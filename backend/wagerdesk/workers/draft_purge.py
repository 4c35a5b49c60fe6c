"""Drops drafts whose time window has passed."""

import logging

from wagerdesk.services.draft_service import draft_store

logger = logging.getLogger("wagerdesk.draft_purge")


async def purge_drafts() -> int:
    purged = draft_store.purge_expired()
    if purged:
        logger.info("Purged %d expired drafts", purged)
    return purged

"""Append-only audit log of state-changing match actions.

All audit entries are insert-only. This module intentionally exposes NO
update or delete operations on the audit_logs collection.

Entries are written with the caller's session so that a state change and its
audit entry commit together. Unlike request-level logging, a failed append
propagates: the surrounding transaction must abort with it.
"""

import asyncio
import logging
from typing import Any, Optional

from pymongo import DESCENDING

import wagerdesk.database as _db
from wagerdesk.config import settings
from wagerdesk.utils import utcnow

logger = logging.getLogger("wagerdesk.audit")

# Action kinds
CREATE_MATCH = "create_match"
PUBLISHED = "published"
PARTICIPANT_ADDED = "participant_added"
PARTICIPANT_REMOVED = "participant_removed"
CHECKOUT_CREATED = "checkout_channel_created"
CHECKOUT_CREATE_ERROR = "checkout_create_error"
CHECKOUT_DISCARDED = "checkout_discarded"
PROPOSED_VALUE = "proposed_value"
PARTICIPANT_CONFIRMED = "participant_confirmed"
MARKED_PAID = "marked_paid"
RESOLVED = "resolved"
NOTIFY_ERROR = "notify_error"


class AuditSequence:
    """Process-local monotonic sequence, seeded from the highest stored seq.

    A single coordinating process issues every seq, so ordering within a match
    follows the per-match lock. Aborted transactions leave gaps, never repeats.
    """

    def __init__(self) -> None:
        self._last: Optional[int] = None
        self._lock = asyncio.Lock()

    async def next(self) -> int:
        async with self._lock:
            if self._last is None:
                latest = await _db.db.audit_logs.find(
                    {}, {"seq": 1},
                ).sort("seq", DESCENDING).limit(1).to_list(length=1)
                self._last = int(latest[0]["seq"]) if latest else 0
            self._last += 1
            return self._last

    def reset(self) -> None:
        """Forget the cached value; the next call re-reads the collection."""
        self._last = None
        self._lock = asyncio.Lock()


audit_sequence = AuditSequence()


async def append_audit(
    *,
    match_id: Optional[str],
    action: str,
    actor_id: Optional[str] = None,
    detail: str = "",
    session: Any = None,
) -> int:
    """Write an immutable audit record and return its sequence id.

    Args:
        match_id: Match the action belongs to, or None for global actions.
        action: Action kind, e.g. "participant_added".
        actor_id: User who triggered it, or None for system actions.
        detail: Free-form text for human review.
        session: Transaction session shared with the mutation being audited.
    """
    seq = await audit_sequence.next()
    doc = {
        "seq": seq,
        "match_id": match_id,
        "action": action,
        "actor_id": actor_id,
        "detail": detail,
        "created_at": utcnow(),
    }
    await _db.db.audit_logs.insert_one(doc, session=session)
    logger.debug("Audit seq=%d match=%s action=%s actor=%s", seq, match_id, action, actor_id)
    return seq


async def list_recent(limit: int = 50) -> list[dict]:
    """Most recent entries first. Limit is clamped to AUDIT_RECENT_MAX_LIMIT."""
    limit = max(1, min(int(limit), settings.AUDIT_RECENT_MAX_LIMIT))
    return await _db.db.audit_logs.find(
        {}, {"_id": 0},
    ).sort("seq", DESCENDING).limit(limit).to_list(length=limit)


async def list_for_match(match_id: str, limit: int = 500) -> list[dict]:
    """Full history of one match in the order it happened."""
    return await _db.db.audit_logs.find(
        {"match_id": match_id}, {"_id": 0},
    ).sort("seq", 1).limit(limit).to_list(length=limit)


def format_entry(entry: dict) -> str:
    """One log line, as the logs command shows it."""
    created_at = entry.get("created_at")
    stamp = created_at.strftime("%Y-%m-%d %H:%M:%S") if created_at else "-"
    return " • ".join([
        stamp,
        entry.get("match_id") or "-",
        entry.get("action") or "-",
        entry.get("actor_id") or "-",
        entry.get("detail") or "",
    ])

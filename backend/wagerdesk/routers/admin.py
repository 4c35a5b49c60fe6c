"""
backend/wagerdesk/routers/admin.py

Purpose:
    Operator endpoints: the recent audit log (the platform's logs command),
    event bus counters and a manual reconciler pass.

Dependencies:
    - wagerdesk.services.audit_service
    - wagerdesk.services.event_bus
    - wagerdesk.workers.checkout_reconciler
"""

from fastapi import APIRouter, Depends, Query

from wagerdesk.config import settings
from wagerdesk.services.audit_service import format_entry, list_recent
from wagerdesk.services.event_bus import event_bus
from wagerdesk.services.platform_auth import verify_platform_key
from wagerdesk.workers.checkout_reconciler import reconcile_checkouts

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_platform_key)],
)


@router.get("/audit")
async def recent_audit(limit: int = Query(settings.AUDIT_RECENT_MAX_LIMIT, ge=1)):
    """Most recent audit entries first. Oversized limits are clamped."""
    entries = await list_recent(limit)
    return {
        "entries": entries,
        "lines": [format_entry(e) for e in entries],
    }


@router.get("/event-bus")
async def event_bus_stats():
    return event_bus.stats()


@router.post("/reconcile-checkouts")
async def trigger_reconcile():
    return await reconcile_checkouts()

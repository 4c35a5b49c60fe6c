"""
backend/wagerdesk/services/publish_service.py

Purpose:
    Creation and presentation of wager matches: publishing an offer into the
    chosen surfaces, recording the platform message references the offer was
    posted as, and the match view with participants in slot order.

Dependencies:
    - wagerdesk.services.match_store
    - wagerdesk.services.audit_service
"""

import logging
from typing import Optional

import wagerdesk.database as _db
from wagerdesk.models.wager_match import (
    MatchConfiguration,
    MatchState,
    PublicationRef,
    WagerMatchInDB,
)
from wagerdesk.services import audit_service
from wagerdesk.services.lifecycle_service import SLOT_DESIGNATORS
from wagerdesk.services.match_errors import Forbidden, MatchNotFound
from wagerdesk.services.match_locks import match_locks
from wagerdesk.services.match_store import match_store
from wagerdesk.utils import new_id, utcnow

logger = logging.getLogger("wagerdesk.publish_service")


async def publish_match(
    group_id: str,
    broker_id: str,
    configuration: MatchConfiguration,
    surface_ids: list[str],
) -> dict:
    """Create an OPEN match from a finished configuration.

    The platform renders the offer on `surface_ids` afterwards and reports the
    resulting message ids through set_publication_refs.
    """
    if not surface_ids:
        raise ValueError("At least one surface is required.")

    now = utcnow()
    match = WagerMatchInDB(
        _id=new_id(),
        group_id=group_id,
        broker_id=broker_id,
        configuration=configuration,
        state=MatchState.open,
        publication_refs=[PublicationRef(surface_id=s) for s in surface_ids],
        created_at=now,
        updated_at=now,
    )
    doc = match.model_dump(by_alias=True, mode="python")
    doc["state"] = MatchState.open.value

    async with _db.transaction() as session:
        await match_store.insert_match(doc, session=session)
        await audit_service.append_audit(
            match_id=doc["_id"],
            action=audit_service.CREATE_MATCH,
            actor_id=broker_id,
            detail=f"channels={','.join(surface_ids)}",
            session=session,
        )

    logger.info("Match %s published by %s in group %s", doc["_id"], broker_id, group_id)
    return doc


async def set_publication_refs(
    match_id: str, actor_id: str, refs: list[PublicationRef],
) -> dict:
    """Persist where the offer is rendered so later edits can find the messages."""
    async with match_locks.hold(match_id):
        async with _db.transaction() as session:
            match = await match_store.get_match(match_id, session=session)
            if not match:
                raise MatchNotFound()
            if actor_id != match["broker_id"]:
                raise Forbidden("Only the broker can update where the offer is published.")
            payload = [r.model_dump() for r in refs]
            await match_store.set_fields(match_id, {"publication_refs": payload}, session=session)
            posted = [r.surface_id for r in refs if r.message_id]
            await audit_service.append_audit(
                match_id=match_id,
                action=audit_service.PUBLISHED,
                actor_id=actor_id,
                detail=f"channels={','.join(posted)} failed={len(refs) - len(posted)}",
                session=session,
            )
    match["publication_refs"] = payload
    return match


async def get_match_view(match_id: str) -> Optional[dict]:
    """Match plus its participants in join order, for re-rendering."""
    match = await match_store.get_match(match_id)
    if not match:
        return None
    participants = await match_store.list_participants(match_id)
    match["participants"] = [
        {
            "user_id": p["user_id"],
            "slot": SLOT_DESIGNATORS[idx] if idx < len(SLOT_DESIGNATORS) else "?",
            "confirmed": bool(p.get("confirmed")),
            "joined_at": p["joined_at"],
        }
        for idx, p in enumerate(participants)
    ]
    return match

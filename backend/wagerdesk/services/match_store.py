"""
backend/wagerdesk/services/match_store.py

Purpose:
    Persistence access layer for wager matches and their participant rows.
    The only module that reads or writes the wager_matches and
    wager_participants collections. Callers pass the transaction session of
    the unit of work they are in; callers also hold the per-match lock for any
    read-check-write sequence.

Dependencies:
    - wagerdesk.database
    - wagerdesk.models.wager_match
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

import wagerdesk.database as _db
from wagerdesk.models.wager_match import (
    MAX_PARTICIPANTS,
    STATE_RANK,
    MatchState,
    ParticipantInDB,
)
from wagerdesk.utils import utcnow


class MatchStore:
    # ---------- Matches ----------

    async def insert_match(self, doc: dict[str, Any], *, session: Any = None) -> None:
        await _db.db.wager_matches.insert_one(doc, session=session)

    async def get_match(self, match_id: str, *, session: Any = None) -> Optional[dict]:
        return await _db.db.wager_matches.find_one({"_id": match_id}, session=session)

    async def transition_state(
        self,
        match_id: str,
        from_states: Iterable[MatchState],
        to_state: MatchState,
        *,
        fields: Optional[dict[str, Any]] = None,
        session: Any = None,
    ) -> bool:
        """Move match to `to_state` only if it is currently in one of `from_states`."""
        from_states = list(from_states)
        backwards = [s.value for s in from_states if STATE_RANK[s.value] >= STATE_RANK[to_state.value]]
        if backwards:
            raise ValueError(f"Transition {backwards} -> {to_state.value} is not forward.")
        update = {"state": to_state.value, "updated_at": utcnow()}
        update.update(fields or {})
        result = await _db.db.wager_matches.update_one(
            {"_id": match_id, "state": {"$in": [s.value for s in from_states]}},
            {"$set": update},
            session=session,
        )
        return result.modified_count == 1

    async def set_fields(
        self, match_id: str, fields: dict[str, Any], *, session: Any = None,
    ) -> bool:
        result = await _db.db.wager_matches.update_one(
            {"_id": match_id},
            {"$set": {**fields, "updated_at": utcnow()}},
            session=session,
        )
        return result.matched_count == 1

    async def record_checkout(
        self, match_id: str, space_ref: str, *, session: Any = None,
    ) -> bool:
        """Write-once: set the checkout space and enter checkout_active.

        Matches only an open match without a space, so a second writer is a no-op.
        """
        now = utcnow()
        result = await _db.db.wager_matches.update_one(
            {
                "_id": match_id,
                "state": MatchState.open.value,
                "checkout_space_ref": None,
            },
            {"$set": {
                "state": MatchState.checkout_active.value,
                "checkout_space_ref": space_ref,
                "checkout_created_at": now,
                "updated_at": now,
            }},
            session=session,
        )
        return result.modified_count == 1

    async def find_open_with_full_roster(self, limit: int = 100) -> list[dict]:
        """Open matches holding a full roster but no checkout space, oldest first.

        The roster size is filtered server-side so abandoned offers that never
        fill up cannot crowd full matches out of the batch.
        """
        pipeline = [
            {"$match": {"state": MatchState.open.value, "checkout_space_ref": None}},
            {"$sort": {"created_at": 1}},
            {
                "$lookup": {
                    "from": "wager_participants",
                    "localField": "_id",
                    "foreignField": "match_id",
                    "as": "roster",
                }
            },
            {"$match": {"roster": {"$size": MAX_PARTICIPANTS}}},
            {"$limit": limit},
            {"$project": {"roster": 0}},
        ]
        return await _db.db.wager_matches.aggregate(pipeline).to_list(length=limit)

    # ---------- Participants ----------

    async def get_participant(
        self, match_id: str, user_id: str, *, session: Any = None,
    ) -> Optional[dict]:
        return await _db.db.wager_participants.find_one(
            {"match_id": match_id, "user_id": user_id}, session=session,
        )

    async def list_participants(self, match_id: str, *, session: Any = None) -> list[dict]:
        """Participants in join order (slot A first)."""
        return await _db.db.wager_participants.find(
            {"match_id": match_id}, session=session,
        ).sort("joined_at", 1).to_list(length=10)

    async def count_participants(self, match_id: str, *, session: Any = None) -> int:
        return await _db.db.wager_participants.count_documents(
            {"match_id": match_id}, session=session,
        )

    async def insert_participant(
        self, match_id: str, user_id: str, *, session: Any = None,
    ) -> dict:
        """Insert a participant row. DuplicateKeyError propagates to the caller."""
        doc = ParticipantInDB(match_id=match_id, user_id=user_id, joined_at=utcnow()).model_dump()
        await _db.db.wager_participants.insert_one(doc, session=session)
        return doc

    async def delete_participant(
        self, match_id: str, user_id: str, *, session: Any = None,
    ) -> bool:
        result = await _db.db.wager_participants.delete_one(
            {"match_id": match_id, "user_id": user_id}, session=session,
        )
        return result.deleted_count == 1

    async def set_confirmed(
        self, match_id: str, user_id: str, *, session: Any = None,
    ) -> bool:
        result = await _db.db.wager_participants.update_one(
            {"match_id": match_id, "user_id": user_id, "confirmed": False},
            {"$set": {"confirmed": True, "confirmed_at": utcnow()}},
            session=session,
        )
        return result.modified_count == 1


match_store = MatchStore()

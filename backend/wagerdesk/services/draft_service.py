"""
backend/wagerdesk/services/draft_service.py

Purpose:
    Per-actor, time-bounded drafts of an offer while the broker fills in the
    publishing panel (surfaces, category, value, thumbnail, action label).
    Drafts belong to the presentation side: match services never read them,
    they only receive the finished configuration through publish_draft.

Dependencies:
    - wagerdesk.config
    - wagerdesk.services.publish_service
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from wagerdesk.config import settings
from wagerdesk.models.wager_match import MatchConfiguration
from wagerdesk.services.match_errors import DraftExpired, DraftNotFound
from wagerdesk.services.publish_service import publish_match
from wagerdesk.utils import utcnow

logger = logging.getLogger("wagerdesk.draft_service")


@dataclass
class Draft:
    actor_id: str
    group_id: str
    configuration: MatchConfiguration
    surface_ids: list[str] = field(default_factory=list)
    expires_at: datetime = field(default_factory=utcnow)


class DraftStore:
    def __init__(self, ttl_seconds: int) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._drafts: dict[str, Draft] = {}

    def _touch(self, draft: Draft) -> Draft:
        draft.expires_at = utcnow() + self._ttl
        return draft

    def open_draft(self, actor_id: str, group_id: str) -> Draft:
        """Start (or restart) a draft seeded with the panel defaults."""
        draft = Draft(
            actor_id=actor_id,
            group_id=group_id,
            configuration=MatchConfiguration(
                category=settings.DRAFT_DEFAULT_CATEGORY,
                action_label=settings.DRAFT_DEFAULT_ACTION_LABEL,
            ),
        )
        self._drafts[actor_id] = self._touch(draft)
        return draft

    def get_draft(self, actor_id: str) -> Draft:
        draft = self._drafts.get(actor_id)
        if draft is None:
            raise DraftNotFound()
        if draft.expires_at <= utcnow():
            del self._drafts[actor_id]
            raise DraftExpired()
        return draft

    def update_draft(
        self,
        actor_id: str,
        *,
        category: Optional[str] = None,
        suggested_value: Optional[str] = None,
        image_url: Optional[str] = None,
        action_label: Optional[str] = None,
    ) -> Draft:
        draft = self.get_draft(actor_id)
        current = draft.configuration.model_dump()
        updates = {
            "category": category,
            "suggested_value": suggested_value,
            "image_url": image_url,
            "action_label": action_label,
        }
        current.update({k: v for k, v in updates.items() if v is not None})
        # An emptied action label falls back to the previous one.
        if not current["action_label"]:
            current["action_label"] = draft.configuration.action_label or settings.DRAFT_DEFAULT_ACTION_LABEL
        draft.configuration = MatchConfiguration(**current)
        return self._touch(draft)

    def select_surfaces(self, actor_id: str, surface_ids: list[str]) -> Draft:
        unique = list(dict.fromkeys(s for s in surface_ids if s))
        if not unique:
            raise ValueError("Select at least one surface.")
        if len(unique) > settings.DRAFT_MAX_SURFACES:
            raise ValueError(f"At most {settings.DRAFT_MAX_SURFACES} surfaces can be selected.")
        draft = self.get_draft(actor_id)
        draft.surface_ids = unique
        return self._touch(draft)

    def discard_draft(self, actor_id: str) -> bool:
        return self._drafts.pop(actor_id, None) is not None

    async def publish_draft(self, actor_id: str) -> dict:
        """Hand the finished configuration to publish_match and drop the draft."""
        draft = self.get_draft(actor_id)
        if not draft.surface_ids:
            raise ValueError("Select at least one surface.")
        match = await publish_match(
            draft.group_id, actor_id, draft.configuration, draft.surface_ids,
        )
        self._drafts.pop(actor_id, None)
        return match

    def purge_expired(self) -> int:
        now = utcnow()
        expired = [key for key, draft in self._drafts.items() if draft.expires_at <= now]
        for key in expired:
            del self._drafts[key]
        if expired:
            logger.debug("Purged %d expired drafts", len(expired))
        return len(expired)


draft_store = DraftStore(settings.DRAFT_TTL_SECONDS)

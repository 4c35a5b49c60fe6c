"""
backend/wagerdesk/routers/drafts.py

Purpose:
    Per-actor configuration drafts that precede a published match. A draft
    expires after DRAFT_TTL_SECONDS; publishing consumes it.

Dependencies:
    - wagerdesk.services.draft_service
    - wagerdesk.services.platform_auth
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from wagerdesk.services.draft_service import Draft, draft_store
from wagerdesk.services.platform_auth import verify_platform_key

router = APIRouter(
    prefix="/api/drafts",
    tags=["drafts"],
    dependencies=[Depends(verify_platform_key)],
)


class DraftOpen(BaseModel):
    group_id: str = Field(min_length=1, max_length=64)


class DraftUpdate(BaseModel):
    category: Optional[str] = Field(default=None, max_length=100)
    suggested_value: Optional[str] = Field(default=None, max_length=32)
    image_url: Optional[str] = Field(default=None, max_length=500)
    action_label: Optional[str] = Field(default=None, max_length=80)


class SurfaceSelection(BaseModel):
    surface_ids: list[str]


def _draft_response(draft: Draft) -> dict:
    return {
        "actor_id": draft.actor_id,
        "group_id": draft.group_id,
        "configuration": draft.configuration.model_dump(),
        "surface_ids": draft.surface_ids,
        "expires_at": draft.expires_at,
    }


@router.post("/{actor_id}", status_code=status.HTTP_201_CREATED)
async def open_draft(actor_id: str, body: DraftOpen):
    """Start the publishing panel for an actor. Replaces any previous draft."""
    return _draft_response(draft_store.open_draft(actor_id, body.group_id))


@router.get("/{actor_id}")
async def get_draft(actor_id: str):
    return _draft_response(draft_store.get_draft(actor_id))


@router.patch("/{actor_id}")
async def update_draft(actor_id: str, body: DraftUpdate):
    draft = draft_store.update_draft(actor_id, **body.model_dump())
    return _draft_response(draft)


@router.put("/{actor_id}/surfaces")
async def select_surfaces(actor_id: str, body: SurfaceSelection):
    return _draft_response(draft_store.select_surfaces(actor_id, body.surface_ids))


@router.post("/{actor_id}/publish", status_code=status.HTTP_201_CREATED)
async def publish_draft(actor_id: str):
    match = await draft_store.publish_draft(actor_id)
    return {"match_id": match["_id"], "state": match["state"], "surface_ids": [
        ref["surface_id"] for ref in match["publication_refs"]
    ]}


@router.delete("/{actor_id}")
async def discard_draft(actor_id: str):
    return {"discarded": draft_store.discard_draft(actor_id)}

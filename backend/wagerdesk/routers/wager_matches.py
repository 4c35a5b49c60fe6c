"""
backend/wagerdesk/routers/wager_matches.py

Purpose:
    Inbound platform events for wager matches: publish, claim/leave, the
    checkout-phase actions and per-match history. The router only translates
    HTTP into service calls; services raise MatchError subclasses that main.py
    renders as {"detail", "kind"}.

Dependencies:
    - wagerdesk.services.admission_service
    - wagerdesk.services.checkout_service
    - wagerdesk.services.lifecycle_service
    - wagerdesk.services.publish_service
"""

from fastapi import APIRouter, Depends, Query, status

from wagerdesk.models.audit import AuditEntry
from wagerdesk.models.wager_match import (
    ActorBody,
    MatchPublish,
    ProposeValueBody,
    PublicationRefsUpdate,
    ResolveBody,
    WagerMatchResponse,
)
from wagerdesk.services import admission_service, lifecycle_service
from wagerdesk.services.audit_service import list_for_match
from wagerdesk.services.checkout_service import ensure_checkout
from wagerdesk.services.match_errors import MatchNotFound
from wagerdesk.services.platform_auth import verify_platform_key
from wagerdesk.services.publish_service import (
    get_match_view,
    publish_match,
    set_publication_refs,
)

router = APIRouter(
    prefix="/api/wager-matches",
    tags=["wager-matches"],
    dependencies=[Depends(verify_platform_key)],
)

_CLAIM_MESSAGES = {
    "accepted": "You joined the match.",
    "already_claimed": "You already joined this match.",
}
_LEAVE_MESSAGES = {
    "removed": "You left the match.",
    "not_participant": "You are not part of this match.",
}
_CHECKOUT_MESSAGES = {
    "created": "Private checkout created.",
    "already_exists": "The checkout already exists.",
    "not_ready": "The match is not ready for checkout.",
}


def _match_response(view: dict) -> WagerMatchResponse:
    return WagerMatchResponse(
        id=view["_id"],
        group_id=view["group_id"],
        broker_id=view["broker_id"],
        configuration=view["configuration"],
        state=view["state"],
        participants=view.get("participants", []),
        publication_refs=view.get("publication_refs", []),
        checkout_space_ref=view.get("checkout_space_ref"),
        proposed_value=view.get("proposed_value"),
        outcome=view.get("outcome"),
        created_at=view["created_at"],
    )


async def _view_or_404(match_id: str) -> dict:
    view = await get_match_view(match_id)
    if view is None:
        raise MatchNotFound()
    return view


@router.post("", status_code=status.HTTP_201_CREATED, response_model=WagerMatchResponse)
async def publish(body: MatchPublish):
    """Create an open match from the broker's finished configuration."""
    match = await publish_match(body.group_id, body.actor_id, body.configuration, body.surface_ids)
    return _match_response(await _view_or_404(match["_id"]))


@router.put("/{match_id}/publications", response_model=WagerMatchResponse)
async def update_publications(match_id: str, body: PublicationRefsUpdate):
    await set_publication_refs(match_id, body.actor_id, body.refs)
    return _match_response(await _view_or_404(match_id))


@router.get("/{match_id}", response_model=WagerMatchResponse)
async def get_match(match_id: str):
    return _match_response(await _view_or_404(match_id))


@router.post("/{match_id}/claim")
async def claim(match_id: str, body: ActorBody):
    """Claim a slot. Repeating the claim is harmless and reports already_claimed."""
    result = await admission_service.claim(match_id, body.actor_id)
    return {
        **result.model_dump(),
        "message": _CLAIM_MESSAGES[result.outcome],
        "match": _match_response(await _view_or_404(match_id)),
    }


@router.post("/{match_id}/leave")
async def leave(match_id: str, body: ActorBody):
    result = await admission_service.leave(match_id, body.actor_id)
    return {
        **result.model_dump(),
        "message": _LEAVE_MESSAGES[result.outcome],
        "match": _match_response(await _view_or_404(match_id)),
    }


@router.post("/{match_id}/checkout")
async def checkout(match_id: str, body: ActorBody):
    """Manual re-check: provisions the checkout space if it is still missing."""
    result = await ensure_checkout(match_id, actor_id=body.actor_id, trigger="manual")
    return {**result.model_dump(), "message": _CHECKOUT_MESSAGES[result.outcome]}


@router.post("/{match_id}/propose")
async def propose(match_id: str, body: ProposeValueBody):
    result = await lifecycle_service.propose_value(match_id, body.actor_id, body.value)
    return result.model_dump()


@router.post("/{match_id}/confirm")
async def confirm(match_id: str, body: ActorBody):
    result = await lifecycle_service.confirm_payment(match_id, body.actor_id)
    return result.model_dump()


@router.post("/{match_id}/mark-paid")
async def mark_paid(match_id: str, body: ActorBody):
    result = await lifecycle_service.mark_paid(match_id, body.actor_id)
    return result.model_dump()


@router.post("/{match_id}/resolve")
async def resolve(match_id: str, body: ResolveBody):
    result = await lifecycle_service.resolve(match_id, body.actor_id, body.outcome)
    return result.model_dump()


@router.get("/{match_id}/audit", response_model=list[AuditEntry])
async def match_history(match_id: str, limit: int = Query(500, ge=1, le=1000)):
    """Audit entries of one match, oldest first."""
    await _view_or_404(match_id)
    return await list_for_match(match_id, limit=limit)

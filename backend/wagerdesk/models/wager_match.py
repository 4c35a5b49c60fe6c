"""
backend/wagerdesk/models/wager_match.py

Purpose:
    Documents and request/response bodies for wager matches, their
    participants and the results returned by admission, checkout and
    lifecycle operations.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_PARTICIPANTS = 2


class MatchState(str, Enum):
    open = "open"
    checkout_active = "checkout_active"
    payment_confirmed = "payment_confirmed"
    resolved = "resolved"


# Forward-only order; a transition never moves to a lower rank.
STATE_RANK = {
    MatchState.open.value: 0,
    MatchState.checkout_active.value: 1,
    MatchState.payment_confirmed.value: 2,
    MatchState.resolved.value: 3,
}


class MatchConfiguration(BaseModel):
    """Offer payload rendered by the platform. The core only carries it."""
    category: str = Field(default="2v2 MOBILE", min_length=1, max_length=100)
    suggested_value: str = Field(default="", max_length=32)
    image_url: str = Field(default="", max_length=500)
    action_label: str = Field(default="Full", max_length=80)


class PublicationRef(BaseModel):
    surface_id: str
    message_id: Optional[str] = None  # None where posting to the surface failed


class WagerMatchInDB(BaseModel):
    """Wager match document as stored in MongoDB."""
    id: str = Field(alias="_id")
    group_id: str
    broker_id: str
    configuration: MatchConfiguration
    state: MatchState = MatchState.open
    publication_refs: list[PublicationRef] = Field(default_factory=list)
    checkout_space_ref: Optional[str] = None  # set once, never cleared
    checkout_created_at: Optional[datetime] = None
    proposed_value: Optional[str] = None
    paid_at: Optional[datetime] = None
    outcome: Optional[dict] = None  # {designator, winner_id}
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class ParticipantInDB(BaseModel):
    """One claimed slot: (match_id, user_id) is unique."""
    match_id: str
    user_id: str
    confirmed: bool = False
    joined_at: datetime
    confirmed_at: Optional[datetime] = None


# ---------- Operation results ----------


class ClaimResult(BaseModel):
    outcome: Literal["accepted", "already_claimed"]
    count: int
    roster_complete: bool = False


class LeaveResult(BaseModel):
    outcome: Literal["removed", "not_participant"]
    count: int


class CheckoutResult(BaseModel):
    outcome: Literal["created", "already_exists", "not_ready"]
    space_ref: Optional[str] = None
    reason: Optional[str] = None


class LifecycleResult(BaseModel):
    state: MatchState
    changed: bool = True
    detail: str = ""


# ---------- Request bodies ----------


class ActorBody(BaseModel):
    """Every inbound platform event names the acting user."""
    actor_id: str = Field(min_length=1, max_length=64)


class MatchPublish(ActorBody):
    group_id: str = Field(min_length=1, max_length=64)
    configuration: MatchConfiguration = Field(default_factory=MatchConfiguration)
    surface_ids: list[str] = Field(min_length=1, max_length=25)


class PublicationRefsUpdate(ActorBody):
    refs: list[PublicationRef]


class ProposeValueBody(ActorBody):
    model_config = ConfigDict(str_strip_whitespace=True)

    value: str = Field(min_length=1, max_length=32)


class ResolveBody(ActorBody):
    outcome: str = Field(min_length=1, max_length=64)  # "A", "B" or a participant user id


class ParticipantResponse(BaseModel):
    user_id: str
    slot: str
    confirmed: bool
    joined_at: datetime


class WagerMatchResponse(BaseModel):
    """Match data returned to the platform for rendering."""
    id: str
    group_id: str
    broker_id: str
    configuration: MatchConfiguration
    state: MatchState
    participants: list[ParticipantResponse]
    publication_refs: list[PublicationRef]
    checkout_space_ref: Optional[str] = None
    proposed_value: Optional[str] = None
    outcome: Optional[dict] = None
    created_at: datetime

"""
backend/wagerdesk/services/event_models.py

Purpose:
    Domain event contracts for in-process follow-up work. Events are published
    only after the store mutation they describe has committed, and carry IDs
    so subscribers re-read current state instead of trusting the payload.

Dependencies:
    - pydantic
    - wagerdesk.utils
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from wagerdesk.utils import ensure_utc, utcnow

EventType = Literal[
    "roster.completed",
    "checkout.created",
    "match.value_proposed",
    "match.marked_paid",
    "match.resolved",
]


def make_event_id() -> str:
    return str(uuid.uuid4())


def make_correlation_id() -> str:
    return str(uuid.uuid4())


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=make_event_id)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=utcnow)
    correlation_id: str = Field(default_factory=make_correlation_id)
    source: str
    match_id: str


class RosterCompletedEvent(BaseEvent):
    event_type: Literal["roster.completed"] = "roster.completed"
    participant_count: int


class CheckoutCreatedEvent(BaseEvent):
    event_type: Literal["checkout.created"] = "checkout.created"
    space_ref: str
    access_set: list[str] = Field(default_factory=list)


class ValueProposedEvent(BaseEvent):
    event_type: Literal["match.value_proposed"] = "match.value_proposed"
    value: str


class MarkedPaidEvent(BaseEvent):
    event_type: Literal["match.marked_paid"] = "match.marked_paid"


class MatchResolvedEvent(BaseEvent):
    event_type: Literal["match.resolved"] = "match.resolved"
    designator: str
    winner_id: Optional[str] = None


def normalize_event_time(event: BaseEvent) -> BaseEvent:
    event.occurred_at = ensure_utc(event.occurred_at)
    return event

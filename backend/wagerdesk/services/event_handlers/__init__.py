"""
backend/wagerdesk/services/event_handlers/__init__.py

Purpose:
    Central registration entrypoint for event bus subscribers.

Dependencies:
    - wagerdesk.services.event_bus
    - wagerdesk.services.event_handlers.checkout_handlers
    - wagerdesk.services.event_handlers.notify_handlers
"""

from __future__ import annotations

from wagerdesk.config import settings
from wagerdesk.services.event_bus import InMemoryEventBus
from wagerdesk.services.event_handlers.checkout_handlers import handle_roster_completed
from wagerdesk.services.event_handlers.notify_handlers import handle_checkout_notification

_NOTIFY_EVENT_TYPES = (
    "checkout.created",
    "match.value_proposed",
    "match.marked_paid",
    "match.resolved",
)


def register_event_handlers(bus: InMemoryEventBus) -> None:
    if settings.EVENT_HANDLER_CHECKOUT_ENABLED:
        bus.subscribe("roster.completed", handle_roster_completed, handler_name="checkout", concurrency=2)
    if settings.EVENT_HANDLER_NOTIFY_ENABLED:
        for event_type in _NOTIFY_EVENT_TYPES:
            bus.subscribe(event_type, handle_checkout_notification, handler_name="notify", concurrency=1)

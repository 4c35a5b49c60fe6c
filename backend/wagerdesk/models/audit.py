from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuditEntry(BaseModel):
    """Immutable record of one state-changing action.

    Insert-only. No updates or deletes permitted on this collection.
    """

    seq: int  # Total order across all matches
    match_id: Optional[str] = None
    action: str  # e.g. "participant_added", "marked_paid"
    actor_id: Optional[str] = None  # None for system-triggered entries
    detail: str = ""  # Free-form, for human review only
    created_at: datetime

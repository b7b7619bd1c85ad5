from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from shared.models import EventStatus, utcnow


class StatusChangeMessage(BaseModel):
    """Published on the status subject each time an event changes workflow state."""

    message_id: UUID = Field(default_factory=uuid4)
    event_id: int
    from_status: Optional[EventStatus] = None
    to_status: EventStatus
    actor_id: Optional[int] = None
    notes: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utcnow)

"""Pydantic schemas for events."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class EventResponse(BaseModel):
    """Event snapshot, as served from the event:<id> cache entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organizer_id: UUID | None
    organizer_name: str | None = None
    title: str
    description: str | None
    start_date: datetime | None
    max_participants: int | None
    current_participants: int
    requires_approval: bool
    created_at: datetime
    updated_at: datetime

    @property
    def is_full(self) -> bool:
        """True when a capacity is set and every seat is taken."""
        return (
            self.max_participants is not None
            and self.current_participants >= self.max_participants
        )

"""Event model with capacity accounting."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class Event(Base, UUIDv7Mixin, TimestampMixin):
    """
    Event model.

    current_participants counts registrations whose status is 'registered'.
    Only the registration service writes it, always in the same transaction as
    the registration row change that moves it.
    """

    __tablename__ = "events"

    organizer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )

    # NULL means unlimited
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "current_participants >= 0",
            name="ck_events_current_participants_non_negative",
        ),
        CheckConstraint(
            "max_participants IS NULL OR max_participants >= 0",
            name="ck_events_max_participants_non_negative",
        ),
    )

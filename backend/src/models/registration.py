"""EventRegistration model and its status state machine."""
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class RegistrationStatus(StrEnum):
    """Lifecycle status of an event registration."""

    PENDING = "pending"
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"


# Allowed status changes. Entering the current status is handled as a no-op
# before this table is consulted. 'cancelled' is terminal.
ALLOWED_TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.PENDING: frozenset({
        RegistrationStatus.REGISTERED,
        RegistrationStatus.WAITLISTED,
        RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.WAITLISTED: frozenset({
        RegistrationStatus.REGISTERED,
        RegistrationStatus.PENDING,
        RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.REGISTERED: frozenset({
        RegistrationStatus.WAITLISTED,
        RegistrationStatus.PENDING,
        RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.CANCELLED: frozenset(),
}


class EventRegistration(Base, UUIDv7Mixin, TimestampMixin):
    """
    A user's registration for an event.

    At most one active (non-cancelled) registration may exist per
    (event_id, user_id). Cancelled rows are kept so the history survives and a
    user can register again later.
    """

    __tablename__ = "event_registrations"

    event_id: Mapped[UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    car_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    special_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    emergency_contact: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    registration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'registered', 'waitlisted', 'cancelled')",
            name="ck_event_registrations_status",
        ),
        # One active registration per (event, user)
        Index(
            "uq_event_registrations_active",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_event_registrations_event_status", "event_id", "status"),
    )

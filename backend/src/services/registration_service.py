"""
Event registration service.

Event.current_participants counts registrations in the 'registered' status. Every
change that moves a registration across the 'registered' boundary adjusts the
counter in the same transaction as the row change, so the two are never observed
out of step. New seats are claimed with a single conditional UPDATE against the
locked event row, which is what keeps concurrent registrations from overselling
a capacity-limited event.
"""
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.feed_cache import FeedCache
from models.event import Event
from models.registration import ALLOWED_TRANSITIONS, EventRegistration, RegistrationStatus
from models.user import User
from schemas.registration import RegistrationDetails
from services.exceptions import ConflictError, InvalidOperationError, NotFoundError
from services.utils import atomic

logger = logging.getLogger(__name__)


def parse_status(value: RegistrationStatus | str) -> RegistrationStatus:
    """Coerce a raw status value, raising InvalidOperationError if it is unknown."""
    try:
        return RegistrationStatus(value)
    except ValueError as e:
        raise InvalidOperationError(
            f"Unknown registration status: {value}", code="invalid_status",
        ) from e


async def _lock_event(db: AsyncSession, event_id: UUID) -> Event:
    event = await db.scalar(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True),
    )
    if event is None:
        raise NotFoundError("event", event_id)
    return event


async def _lock_registration(
    db: AsyncSession, registration_id: UUID,
) -> tuple[EventRegistration, Event]:
    """
    Lock a registration together with its event.

    The event row is locked first, the same order create_registration uses, so a
    concurrent create and status change on one event cannot deadlock.
    """
    event_id = await db.scalar(
        select(EventRegistration.event_id).where(EventRegistration.id == registration_id),
    )
    if event_id is None:
        raise NotFoundError("registration", registration_id)
    event = await _lock_event(db, event_id)
    registration = await db.scalar(
        select(EventRegistration)
        .where(EventRegistration.id == registration_id)
        .with_for_update()
        .execution_options(populate_existing=True),
    )
    if registration is None:
        raise NotFoundError("registration", registration_id)
    return registration, event


async def _claim_seat(db: AsyncSession, event: Event) -> bool:
    """
    Take one seat if capacity allows. Returns False when the event is full.

    The capacity check and the increment are one statement, so two transactions
    can never both take the last seat.
    """
    result = await db.execute(
        update(Event)
        .where(
            Event.id == event.id,
            or_(
                Event.max_participants.is_(None),
                Event.current_participants < Event.max_participants,
            ),
        )
        .values(current_participants=Event.current_participants + 1)
        .execution_options(synchronize_session=False),
    )
    claimed = result.rowcount == 1
    await db.refresh(event, attribute_names=["current_participants"])
    return claimed


async def _release_seat(db: AsyncSession, event: Event) -> None:
    """Give one seat back, never taking the counter below zero."""
    await db.execute(
        update(Event)
        .where(Event.id == event.id)
        .values(
            current_participants=case(
                (Event.current_participants > 0, Event.current_participants - 1),
                else_=0,
            ),
        )
        .execution_options(synchronize_session=False),
    )
    await db.refresh(event, attribute_names=["current_participants"])


def _participant_delta(old: RegistrationStatus, new: RegistrationStatus) -> int:
    if old != RegistrationStatus.REGISTERED and new == RegistrationStatus.REGISTERED:
        return 1
    if old == RegistrationStatus.REGISTERED and new != RegistrationStatus.REGISTERED:
        return -1
    return 0


class RegistrationService:
    """Create, transition, cancel, and read event registrations."""

    def __init__(self, cache: FeedCache, operation_timeout: float = 5.0) -> None:
        self._cache = cache
        self._operation_timeout = operation_timeout

    async def create_registration(
        self,
        db: AsyncSession,
        event_id: UUID,
        user_id: UUID,
        details: RegistrationDetails | None = None,
    ) -> EventRegistration:
        """
        Register a user for an event.

        The initial status is:
        - pending, when the event requires approval (no seat is taken yet)
        - registered, when a seat was free (the counter is incremented)
        - waitlisted, when the event is at capacity

        Raises:
            NotFoundError: If the event or user does not exist.
            ConflictError: If the user already has an active registration.
            TransientError: If the store failed or the operation timed out.
        """
        details = details or RegistrationDetails()

        async with atomic(db, "create_registration", self._operation_timeout):
            event = await _lock_event(db, event_id)
            if await db.get(User, user_id) is None:
                raise NotFoundError("user", user_id)

            active = await db.scalar(
                select(EventRegistration.id).where(
                    EventRegistration.event_id == event_id,
                    EventRegistration.user_id == user_id,
                    EventRegistration.status != RegistrationStatus.CANCELLED,
                ),
            )
            if active is not None:
                raise ConflictError(
                    "Already registered for this event", code="already_registered",
                )

            if event.requires_approval:
                status = RegistrationStatus.PENDING
            elif await _claim_seat(db, event):
                status = RegistrationStatus.REGISTERED
            else:
                status = RegistrationStatus.WAITLISTED

            registration = EventRegistration(
                event_id=event_id,
                user_id=user_id,
                status=status,
                car_details=details.car_details,
                special_requirements=details.special_requirements,
                emergency_contact=details.emergency_contact,
            )
            db.add(registration)
            try:
                await db.flush()
            except IntegrityError as e:
                # A concurrent registration for the same user committed first
                raise ConflictError(
                    "Already registered for this event", code="already_registered",
                ) from e
            await db.refresh(registration)

        logger.info(
            "registration_created",
            extra={
                "registration_id": str(registration.id),
                "event_id": str(event_id),
                "user_id": str(user_id),
                "status": str(status),
            },
        )
        await self._cache.invalidate_event(event_id)
        return registration

    async def update_registration_status(
        self,
        db: AsyncSession,
        registration_id: UUID,
        new_status: RegistrationStatus | str,
        details: dict[str, Any] | None = None,
    ) -> EventRegistration:
        """
        Move a registration to a new status (organizer action).

        Entering the current status only applies the optional detail updates.
        Promotion into 'registered' takes a seat like a new registration does,
        so it is refused while the event is full.

        Args:
            details: Optional car_details / special_requirements to update alongside.

        Raises:
            InvalidOperationError: If the status is unknown or the transition is not allowed.
                Also raised with code "event_full" when no seat is left for a promotion.
            NotFoundError: If the registration does not exist.
            TransientError: If the store failed or the operation timed out.
        """
        target = parse_status(new_status)

        async with atomic(db, "update_registration_status", self._operation_timeout):
            registration, event = await _lock_registration(db, registration_id)

            current = RegistrationStatus(registration.status)
            if target != current and target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidOperationError(
                    f"Cannot change registration from {current} to {target}",
                    code="invalid_transition",
                )

            delta = _participant_delta(current, target)
            if delta > 0 and not await _claim_seat(db, event):
                raise InvalidOperationError(
                    f"Event {event.id} has no free seat for this registration",
                    code="event_full",
                )
            if delta < 0:
                await _release_seat(db, event)

            registration.status = target
            if target == RegistrationStatus.CANCELLED:
                registration.cancelled_at = datetime.now(UTC)
            for field in ("car_details", "special_requirements"):
                if details and details.get(field) is not None:
                    setattr(registration, field, details[field])

            await db.flush()
            await db.refresh(registration)

        logger.info(
            "registration_status_changed",
            extra={
                "registration_id": str(registration_id),
                "event_id": str(registration.event_id),
                "from_status": str(current),
                "to_status": str(target),
            },
        )
        await self._cache.invalidate_event(registration.event_id)
        return registration

    async def cancel_registration(
        self, db: AsyncSession, registration_id: UUID,
    ) -> EventRegistration:
        """
        Cancel a registration, freeing its seat if it held one.

        The row is kept with status 'cancelled'. Cancelling twice is a no-op, so
        a retried cancel never decrements the counter a second time.

        Raises:
            NotFoundError: If the registration does not exist.
            TransientError: If the store failed or the operation timed out.
        """
        async with atomic(db, "cancel_registration", self._operation_timeout):
            registration, event = await _lock_registration(db, registration_id)
            if registration.status == RegistrationStatus.CANCELLED:
                return registration

            previous = RegistrationStatus(registration.status)
            if previous == RegistrationStatus.REGISTERED:
                await _release_seat(db, event)

            registration.status = RegistrationStatus.CANCELLED
            registration.cancelled_at = datetime.now(UTC)
            await db.flush()
            await db.refresh(registration)

        logger.info(
            "registration_cancelled",
            extra={
                "registration_id": str(registration_id),
                "event_id": str(registration.event_id),
                "previous_status": str(previous),
            },
        )
        await self._cache.invalidate_event(registration.event_id)
        return registration

    async def get_registration(
        self, db: AsyncSession, registration_id: UUID,
    ) -> EventRegistration:
        """Get a registration by ID. Raises NotFoundError if missing."""
        registration = await db.get(EventRegistration, registration_id)
        if registration is None:
            raise NotFoundError("registration", registration_id)
        return registration

    async def list_registrations(
        self,
        db: AsyncSession,
        event_id: UUID | None = None,
        user_id: UUID | None = None,
        status: RegistrationStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[EventRegistration], int]:
        """
        List registrations matching the given filters, newest first.

        Returns:
            Tuple of (registrations, total matching count).
        """
        filters = []
        if event_id is not None:
            filters.append(EventRegistration.event_id == event_id)
        if user_id is not None:
            filters.append(EventRegistration.user_id == user_id)
        if status is not None:
            filters.append(EventRegistration.status == parse_status(status))

        total = await db.scalar(
            select(func.count()).select_from(EventRegistration).where(*filters),
        ) or 0
        result = await db.execute(
            select(EventRegistration)
            .where(*filters)
            .order_by(
                EventRegistration.registration_date.desc(),
                EventRegistration.id.desc(),
            )
            .limit(limit)
            .offset(offset),
        )
        return list(result.scalars().all()), total

"""Event registration endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_async_session,
    get_current_principal,
    get_registration_service,
    require_role,
)
from api.errors import http_error_from_service
from core.auth import Principal
from models.registration import EventRegistration
from schemas.registration import (
    RegistrationCreate,
    RegistrationDetails,
    RegistrationListResponse,
    RegistrationResponse,
    RegistrationStatusUpdate,
)
from services.exceptions import ServiceError
from services.registration_service import RegistrationService

router = APIRouter(prefix="/registrations", tags=["registrations"])

# Roles that may manage registrations other than their own
PRIVILEGED_ROLES = ("organizer", "admin")


def _check_access(principal: Principal, registration: EventRegistration) -> None:
    """Only the registrant or an organizer/admin may see or cancel a registration."""
    if principal.role in PRIVILEGED_ROLES:
        return
    if registration.user_id != principal.user_id:
        # Same response as a missing registration, so ids can't be guessed at
        raise HTTPException(
            status_code=404,
            detail={
                "code": "registration_not_found",
                "message": f"Registration not found: {registration.id}",
            },
        )


@router.post("", response_model=RegistrationResponse, status_code=201)
async def create_registration(
    data: RegistrationCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    registration_service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """
    Register the authenticated caller for an event.

    The resulting status is pending (approval required), registered (seat
    available), or waitlisted (event full).
    """
    details = RegistrationDetails(
        car_details=data.car_details,
        special_requirements=data.special_requirements,
        emergency_contact=data.emergency_contact,
    )
    try:
        registration = await registration_service.create_registration(
            db, data.event_id, principal.user_id, details,
        )
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return RegistrationResponse.model_validate(registration)


@router.get("", response_model=RegistrationListResponse)
async def list_registrations(
    event_id: UUID | None = Query(default=None),
    user_id: UUID | None = Query(default=None),
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    registration_service: RegistrationService = Depends(get_registration_service),
) -> RegistrationListResponse:
    """
    List registrations, newest first.

    Regular users only ever see their own registrations; organizers and admins
    can filter by any user.
    """
    if principal.role not in PRIVILEGED_ROLES:
        user_id = principal.user_id
    try:
        items, total = await registration_service.list_registrations(
            db,
            event_id=event_id,
            user_id=user_id,
            status=status,
            limit=limit,
            offset=offset,
        )
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return RegistrationListResponse(
        items=[RegistrationResponse.model_validate(r) for r in items],
        total=total,
        offset=offset,
        limit=limit,
        has_more=offset + len(items) < total,
    )


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    registration_service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """Get a single registration."""
    try:
        registration = await registration_service.get_registration(db, registration_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e
    _check_access(principal, registration)
    return RegistrationResponse.model_validate(registration)


@router.patch("/{registration_id}", response_model=RegistrationResponse)
async def update_registration_status(
    registration_id: UUID,
    data: RegistrationStatusUpdate,
    _principal: Principal = Depends(require_role(*PRIVILEGED_ROLES)),
    db: AsyncSession = Depends(get_async_session),
    registration_service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """Change a registration's status (organizers and admins only)."""
    try:
        registration = await registration_service.update_registration_status(
            db,
            registration_id,
            data.status,
            data.model_dump(include={"car_details", "special_requirements"}, exclude_none=True),
        )
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return RegistrationResponse.model_validate(registration)


@router.delete("/{registration_id}", status_code=204)
async def cancel_registration(
    registration_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    registration_service: RegistrationService = Depends(get_registration_service),
) -> Response:
    """Cancel a registration. Cancelling an already-cancelled registration succeeds."""
    try:
        registration = await registration_service.get_registration(db, registration_id)
        _check_access(principal, registration)
        await registration_service.cancel_registration(db, registration_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return Response(status_code=204)

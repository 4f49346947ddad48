"""Event read endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_principal, get_event_service
from api.errors import http_error_from_service
from core.auth import Principal
from schemas.event import EventResponse
from services.event_service import EventService
from services.exceptions import ServiceError

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: UUID,
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    event_service: EventService = Depends(get_event_service),
) -> EventResponse:
    """Get an event with its current participant count."""
    try:
        return await event_service.get_event(db, event_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e

"""User profile reads."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_principal, get_feed_service
from api.errors import http_error_from_service
from core.auth import Principal
from schemas.user import UserSummary
from services.exceptions import ServiceError
from services.feed_service import FeedService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}", response_model=UserSummary)
async def get_user_profile(
    user_id: UUID,
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    feed_service: FeedService = Depends(get_feed_service),
) -> UserSummary:
    """Get a user's card with follower and following counts."""
    try:
        return await feed_service.get_user_profile(db, user_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e

"""Follow graph endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_async_session,
    get_current_principal,
    get_feed_service,
    get_follow_service,
)
from api.errors import http_error_from_service
from core.auth import Principal
from schemas.follow import FollowAck, FollowCreate, FollowStatusResponse
from schemas.user import SuggestionPage, UserPage
from services.exceptions import ServiceError
from services.feed_service import FeedService
from services.follow_service import FollowService

router = APIRouter(prefix="/follows", tags=["follows"])


@router.post("", response_model=FollowAck, status_code=201)
async def follow_user(
    data: FollowCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    follow_service: FollowService = Depends(get_follow_service),
) -> FollowAck:
    """Follow a user as the authenticated caller."""
    try:
        await follow_service.follow_user(db, principal.user_id, data.following_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return FollowAck(
        follower_id=principal.user_id,
        following_id=data.following_id,
        following=True,
    )


@router.delete("/{following_id}", status_code=204)
async def unfollow_user(
    following_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    follow_service: FollowService = Depends(get_follow_service),
) -> Response:
    """Unfollow a user. Succeeds whether or not the caller was following them."""
    try:
        await follow_service.unfollow_user(db, principal.user_id, following_id)
    except ServiceError as e:
        raise http_error_from_service(e) from e
    return Response(status_code=204)


@router.get("/{user_id}/status/{following_id}", response_model=FollowStatusResponse)
async def get_follow_status(
    user_id: UUID,
    following_id: UUID,
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    follow_service: FollowService = Depends(get_follow_service),
) -> FollowStatusResponse:
    """Whether user_id follows following_id."""
    return await follow_service.get_follow_status(db, user_id, following_id)


@router.get("/{user_id}/{list_type}", response_model=SuggestionPage | UserPage)
async def get_follow_page(
    user_id: UUID,
    list_type: str,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_async_session),
    feed_service: FeedService = Depends(get_feed_service),
) -> SuggestionPage | UserPage:
    """
    Get a page of followers, following, or suggestions for a user.

    list_type is one of: followers, following, suggestions.
    """
    try:
        return await feed_service.get_follow_page(db, list_type, user_id, limit, offset)
    except ServiceError as e:
        raise http_error_from_service(e) from e

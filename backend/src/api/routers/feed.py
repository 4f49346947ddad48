"""Feed endpoint."""
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_principal, get_feed_service
from api.errors import http_error_from_service
from core.auth import Principal
from schemas.feed import FeedResponse
from services.exceptions import ServiceError
from services.feed_service import FeedService

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("", response_model=FeedResponse)
async def get_feed(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    include: list[str] | None = Query(
        default=None,
        description="Sections to include (repeat or comma-separate). Defaults to all.",
    ),
    principal: Principal = Depends(get_current_principal),
    feed_service: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Get the caller's feed."""
    sections = [s.strip() for item in include or [] for s in item.split(",") if s.strip()]
    try:
        return await feed_service.assemble_feed(principal.user_id, limit, offset, sections)
    except ServiceError as e:
        raise http_error_from_service(e) from e

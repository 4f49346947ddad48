"""Liveness and dependency status."""
import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import ServiceContainer, get_services
from db.session import get_async_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    database: Literal["healthy", "unhealthy"]
    cache: Literal["healthy", "unavailable"]


async def _database_ok(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("health_database_failed")
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_async_session),
    services: ServiceContainer = Depends(get_services),
) -> HealthResponse:
    """
    Report database and cache reachability.

    Redis only holds disposable state, so losing it degrades the service rather
    than taking it down.
    """
    database_ok = await _database_ok(db)
    cache_ok = await services.redis.ping()
    return HealthResponse(
        status="healthy" if database_ok and cache_ok else "degraded",
        database="healthy" if database_ok else "unhealthy",
        cache="healthy" if cache_ok else "unavailable",
    )

"""FastAPI dependencies for injection."""
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.auth import get_current_principal, require_role
from core.config import Settings, get_settings
from core.feed_cache import FeedCache
from core.redis import RedisClient
from db.session import build_engine, build_session_factory, get_async_session
from services.event_service import EventService
from services.feed_service import FeedService
from services.follow_service import FollowService
from services.registration_service import RegistrationService


@dataclass
class ServiceContainer:
    """Process-wide resources built once at startup and shared by every request."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: RedisClient
    cache: FeedCache
    follow_service: FollowService
    registration_service: RegistrationService
    event_service: EventService
    feed_service: FeedService

    async def close(self) -> None:
        """Release the Redis connection and the database pool."""
        await self.redis.close()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    engine: AsyncEngine | None = None,
    redis_client: RedisClient | None = None,
) -> ServiceContainer:
    """
    Wire the services from settings.

    engine and redis_client may be passed in (tests inject an in-process store
    and fakeredis); the caller is responsible for connecting the Redis client.
    """
    engine = engine or build_engine(settings)
    session_factory = build_session_factory(engine)
    redis_client = redis_client or RedisClient(
        url=settings.redis_url,
        enabled=settings.redis_enabled,
        pool_size=settings.redis_pool_size,
    )
    cache = FeedCache(redis_client)
    follow_service = FollowService(cache, settings.operation_timeout_seconds)
    return ServiceContainer(
        engine=engine,
        session_factory=session_factory,
        redis=redis_client,
        cache=cache,
        follow_service=follow_service,
        registration_service=RegistrationService(cache, settings.operation_timeout_seconds),
        event_service=EventService(cache, settings.event_cache_ttl_seconds),
        feed_service=FeedService(
            follow_service,
            cache,
            session_factory,
            follow_ttl_seconds=settings.follow_cache_ttl_seconds,
            feed_ttl_seconds=settings.feed_cache_ttl_seconds,
        ),
    )


def get_services(request: Request) -> ServiceContainer:
    """Return the container built by the application lifespan."""
    return request.app.state.services


def get_follow_service(request: Request) -> FollowService:
    """Return the shared FollowService."""
    return get_services(request).follow_service


def get_registration_service(request: Request) -> RegistrationService:
    """Return the shared RegistrationService."""
    return get_services(request).registration_service


def get_event_service(request: Request) -> EventService:
    """Return the shared EventService."""
    return get_services(request).event_service


def get_feed_service(request: Request) -> FeedService:
    """Return the shared FeedService."""
    return get_services(request).feed_service


__all__ = [
    "ServiceContainer",
    "build_services",
    "get_async_session",
    "get_current_principal",
    "get_event_service",
    "get_feed_service",
    "get_follow_service",
    "get_registration_service",
    "get_services",
    "get_settings",
    "require_role",
]

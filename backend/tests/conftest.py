"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import pytest
from fakeredis.aioredis import FakeRedis
from fastapi import HTTPException
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import models  # noqa: F401  (registers every table on Base.metadata)
from core.auth import Principal
from core.feed_cache import FeedCache
from core.redis import RedisClient
from db.session import build_session_factory
from models.base import Base
from models.event import Event
from models.user import User
from services.event_service import EventService
from services.feed_service import FeedService
from services.follow_service import FollowService
from services.registration_service import RegistrationService


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add --postgres to run the suite against a throwaway PostgreSQL container."""
    parser.addoption(
        "--postgres",
        action="store_true",
        default=False,
        help="run database tests against PostgreSQL (testcontainers) instead of SQLite",
    )


@pytest.fixture(scope="session")
def postgres_url(request: pytest.FixtureRequest) -> str | None:
    """Start a PostgreSQL container for the session when --postgres is given."""
    if not request.config.getoption("--postgres"):
        return None
    from testcontainers.postgres import PostgresContainer  # noqa: PLC0415

    container = PostgresContainer("postgres:16", driver="asyncpg")
    container.start()
    request.addfinalizer(container.stop)
    return container.get_connection_url()


@pytest.fixture
def database_url(postgres_url: str | None, tmp_path: Path) -> str:
    """
    Get the database URL and set it in environment.

    This must be set before any app imports that trigger Settings validation.
    Without --postgres every test gets its own SQLite file.
    """
    url = postgres_url or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    os.environ["DATABASE_URL"] = url
    os.environ["DEV_MODE"] = "false"
    from core.config import get_settings  # noqa: PLC0415

    get_settings.cache_clear()
    return url


@pytest.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine with a fresh schema, dropped again after the test."""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory for independent sessions.

    Each session runs its own transactions, which is what the concurrency tests
    need to race real writers against each other.
    """
    return build_session_factory(async_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session handed to the service under test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def fake_redis() -> FakeRedis:
    """In-process Redis double, emptied so no keys leak between tests."""
    redis = FakeRedis()
    await redis.flushall()
    return redis


@pytest.fixture
async def redis_client(fake_redis: FakeRedis) -> AsyncGenerator[RedisClient]:
    """Connected RedisClient backed by fakeredis."""
    client = RedisClient("redis://fake", client=fake_redis)
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def feed_cache(redis_client: RedisClient) -> FeedCache:
    """FeedCache over the fakeredis-backed client."""
    return FeedCache(redis_client)


@pytest.fixture
def follow_service(feed_cache: FeedCache) -> FollowService:
    """FollowService wired to the test cache."""
    return FollowService(feed_cache, operation_timeout=5.0)


@pytest.fixture
def registration_service(feed_cache: FeedCache) -> RegistrationService:
    """RegistrationService wired to the test cache."""
    return RegistrationService(feed_cache, operation_timeout=5.0)


@pytest.fixture
def event_service(feed_cache: FeedCache) -> EventService:
    """EventService wired to the test cache."""
    return EventService(feed_cache, ttl_seconds=600)


@pytest.fixture
def feed_service(
    follow_service: FollowService,
    feed_cache: FeedCache,
    session_factory: async_sessionmaker[AsyncSession],
) -> FeedService:
    """FeedService wired to the test cache and store."""
    return FeedService(follow_service, feed_cache, session_factory)


@pytest.fixture
def make_user(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[User]]:
    """Factory that commits a user and returns it."""

    async def _make_user(display_name: str = "Driver", **kwargs: Any) -> User:
        async with session_factory() as session:
            user = User(
                email=kwargs.pop("email", f"{uuid4().hex}@example.com"),
                display_name=display_name,
                **kwargs,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def make_event(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Event]]:
    """Factory that commits an event (no approval needed, starts next week by default)."""

    async def _make_event(
        title: str = "Track Day",
        max_participants: int | None = None,
        requires_approval: bool = False,
        organizer_id: UUID | None = None,
        start_date: datetime | None = None,
    ) -> Event:
        async with session_factory() as session:
            event = Event(
                title=title,
                max_participants=max_participants,
                requires_approval=requires_approval,
                organizer_id=organizer_id,
                start_date=start_date or datetime.now(UTC) + timedelta(days=7),
            )
            session.add(event)
            await session.commit()
            return event

    return _make_event


@pytest.fixture
def fetch(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[type, UUID], Awaitable[Any]]:
    """Load a row in a fresh session, so assertions see committed state only."""

    async def _fetch(model: type, entity_id: UUID) -> Any:
        async with session_factory() as session:
            return await session.get(model, entity_id)

    return _fetch


class PrincipalHolder:
    """Who the test client is authenticated as."""

    def __init__(self) -> None:
        self.principal: Principal | None = None

    def login(self, user: User, role: str = "user") -> None:
        """Authenticate subsequent requests as user."""
        self.principal = Principal(subject=str(user.id), role=role)

    def logout(self) -> None:
        """Make subsequent requests unauthenticated."""
        self.principal = None


@pytest.fixture
def auth() -> PrincipalHolder:
    """Controls the principal returned by the auth dependency in API tests."""
    return PrincipalHolder()


@pytest.fixture
async def client(
    async_engine: AsyncEngine,
    redis_client: RedisClient,
    auth: PrincipalHolder,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client wired to the test store, fakeredis, and a settable principal."""
    from api.dependencies import build_services  # noqa: PLC0415
    from api.main import app  # noqa: PLC0415
    from core.auth import get_current_principal  # noqa: PLC0415
    from core.config import get_settings  # noqa: PLC0415

    app.state.services = build_services(
        get_settings(), engine=async_engine, redis_client=redis_client,
    )

    async def override_get_current_principal() -> Principal:
        if auth.principal is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return auth.principal

    app.dependency_overrides[get_current_principal] = override_get_current_principal

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    del app.state.services

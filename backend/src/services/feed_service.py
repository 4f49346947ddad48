"""
Feed and follow-list read side.

Everything here is read-only and served through the cache. Follow-list pages are
cached per (type, user, limit, offset) and the assembled feed per every query
parameter; mutations elsewhere delete those keys after they commit.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.feed_cache import FeedCache, FollowListType
from models.content import Route, SocialPost
from models.event import Event
from models.follow import Follow
from models.user import User
from schemas.feed import FeedEvent, FeedPost, FeedResponse, FeedRoute, FeedSection
from schemas.user import SuggestionPage, UserPage, UserSummary
from services.exceptions import InvalidOperationError, NotFoundError
from services.follow_service import FollowService

logger = logging.getLogger(__name__)


def parse_follow_list_type(value: FollowListType | str) -> FollowListType:
    """Coerce a raw list type, raising InvalidOperationError if it is unknown."""
    try:
        return FollowListType(value)
    except ValueError as e:
        raise InvalidOperationError(
            f"Unknown follow list type: {value}", code="invalid_list_type",
        ) from e


def parse_feed_sections(include: list[str] | None) -> list[FeedSection]:
    """Return the requested sections (all when none given), de-duplicated and sorted."""
    if not include:
        return sorted(FeedSection)
    try:
        return sorted({FeedSection(section) for section in include})
    except ValueError as e:
        raise InvalidOperationError(
            f"Unknown feed section in: {', '.join(include)}", code="invalid_feed_section",
        ) from e


class FeedService:
    """Assembles follow-list pages and the combined feed."""

    def __init__(
        self,
        follow_service: FollowService,
        cache: FeedCache,
        session_factory: async_sessionmaker[AsyncSession],
        follow_ttl_seconds: int = 300,
        feed_ttl_seconds: int = 120,
    ) -> None:
        self._follow_service = follow_service
        self._cache = cache
        self._session_factory = session_factory
        self._follow_ttl_seconds = follow_ttl_seconds
        self._feed_ttl_seconds = feed_ttl_seconds

    async def get_follow_page(
        self,
        db: AsyncSession,
        list_type: FollowListType | str,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> UserPage | SuggestionPage:
        """
        Read-through cached follower, following, or suggestion page.

        Raises:
            InvalidOperationError: If list_type is not followers/following/suggestions.
            NotFoundError: If the user does not exist (on a cache miss).
        """
        list_type = parse_follow_list_type(list_type)
        page_model = SuggestionPage if list_type == FollowListType.SUGGESTIONS else UserPage

        key = FeedCache.follow_list_key(list_type, user_id, limit, offset)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return page_model.model_validate(cached)

        loaders = {
            FollowListType.FOLLOWERS: self._follow_service.list_followers,
            FollowListType.FOLLOWING: self._follow_service.list_following,
            FollowListType.SUGGESTIONS: self._follow_service.suggest_users,
        }
        page = await loaders[list_type](db, user_id, limit, offset)
        await self._cache.set_json(key, page.model_dump(mode="json"), self._follow_ttl_seconds)
        return page

    async def get_user_profile(self, db: AsyncSession, user_id: UUID) -> UserSummary:
        """Read-through user:<id> card; follow changes delete it with the list pages."""
        key = FeedCache.user_key(user_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return UserSummary.model_validate(cached)

        user = await db.scalar(
            select(User).where(User.id == user_id).execution_options(populate_existing=True),
        )
        if user is None:
            raise NotFoundError("user", user_id)
        profile = UserSummary.model_validate(user)
        await self._cache.set_json(key, profile.model_dump(mode="json"), self._follow_ttl_seconds)
        return profile

    async def assemble_feed(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
        include: list[str] | None = None,
    ) -> FeedResponse:
        """
        Build a user's feed from the requested sections.

        Sections are fetched concurrently, each on its own session. The result is
        cached under a key that includes every parameter, so two requests that
        differ in any of them never share an entry.

        Raises:
            InvalidOperationError: If include names an unknown section.
            NotFoundError: If the user does not exist (on a cache miss).
        """
        sections = parse_feed_sections(include)
        key = FeedCache.feed_key(user_id, limit, offset, [str(s) for s in sections])
        cached = await self._cache.get_json(key)
        if cached is not None:
            return FeedResponse.model_validate(cached)

        loaders: dict[FeedSection, Callable[[AsyncSession], Awaitable[Any]]] = {
            FeedSection.FOLLOWERS: lambda db: self.get_follow_page(
                db, FollowListType.FOLLOWERS, user_id, limit, offset,
            ),
            FeedSection.FOLLOWING: lambda db: self.get_follow_page(
                db, FollowListType.FOLLOWING, user_id, limit, offset,
            ),
            FeedSection.SUGGESTIONS: lambda db: self.get_follow_page(
                db, FollowListType.SUGGESTIONS, user_id, limit, offset,
            ),
            FeedSection.POSTS: lambda db: self._recent_posts(db, user_id, limit, offset),
            FeedSection.EVENTS: lambda db: self._upcoming_events(db, limit, offset),
            FeedSection.ROUTES: lambda db: self._recent_routes(db, user_id, limit, offset),
        }

        async def run(section: FeedSection) -> Any:
            async with self._session_factory() as session:
                return await loaders[section](session)

        results = await asyncio.gather(*(run(section) for section in sections))

        feed = FeedResponse(
            user_id=user_id,
            limit=limit,
            offset=offset,
            **{str(section): result for section, result in zip(sections, results, strict=True)},
        )
        await self._cache.set_json(key, feed.model_dump(mode="json"), self._feed_ttl_seconds)
        logger.info(
            "feed_assembled",
            extra={"user_id": str(user_id), "sections": [str(s) for s in sections]},
        )
        return feed

    async def _recent_posts(
        self, db: AsyncSession, user_id: UUID, limit: int, offset: int,
    ) -> list[FeedPost]:
        followed = select(Follow.following_id).where(Follow.follower_id == user_id)
        result = await db.execute(
            select(SocialPost, User.display_name)
            .join(User, User.id == SocialPost.author_id)
            .where(SocialPost.author_id.in_(followed))
            .order_by(SocialPost.created_at.desc(), SocialPost.id.desc())
            .limit(limit)
            .offset(offset),
        )
        return [
            FeedPost.model_validate(post).model_copy(update={"author_name": author_name})
            for post, author_name in result.all()
        ]

    async def _upcoming_events(
        self, db: AsyncSession, limit: int, offset: int,
    ) -> list[FeedEvent]:
        result = await db.execute(
            select(Event)
            .where(Event.start_date >= datetime.now(UTC))
            .order_by(Event.start_date, Event.id)
            .limit(limit)
            .offset(offset),
        )
        return [FeedEvent.model_validate(event) for event in result.scalars().all()]

    async def _recent_routes(
        self, db: AsyncSession, user_id: UUID, limit: int, offset: int,
    ) -> list[FeedRoute]:
        followed = select(Follow.following_id).where(Follow.follower_id == user_id)
        result = await db.execute(
            select(Route)
            .where(Route.creator_id.in_(followed), Route.is_public.is_(True))
            .order_by(Route.created_at.desc(), Route.id.desc())
            .limit(limit)
            .offset(offset),
        )
        return [FeedRoute.model_validate(route) for route in result.scalars().all()]

"""Tests for follow-list pages and feed assembly."""
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fakeredis.aioredis import FakeRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.content import Route, SocialPost
from models.event import Event
from models.user import User
from schemas.user import SuggestionPage, UserPage
from services.exceptions import InvalidOperationError, NotFoundError
from services.feed_service import FeedService, parse_feed_sections
from services.follow_service import FollowService

MakeUser = Callable[..., Awaitable[User]]
MakeEvent = Callable[..., Awaitable[Event]]


# ---------------------------------------------------------------------------
# get_follow_page
# ---------------------------------------------------------------------------


async def test__get_follow_page__miss_populates_cache_and_hit_skips_store(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    fake_redis: FakeRedis,
    make_user: MakeUser,
) -> None:
    a = await make_user("Alice")
    b = await make_user("Bob")
    await follow_service.follow_user(db_session, a.id, b.id)

    first = await feed_service.get_follow_page(db_session, "followers", b.id, 20, 0)
    assert isinstance(first, UserPage)
    assert [u.id for u in first.items] == [a.id]
    assert await fake_redis.exists(f"follow:followers:{b.id}:20:0") == 1

    with patch.object(follow_service, "list_followers", AsyncMock()) as list_followers:
        second = await feed_service.get_follow_page(db_session, "followers", b.id, 20, 0)

    list_followers.assert_not_called()
    assert second == first


async def test__get_follow_page__follow_invalidates_cached_page(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    make_user: MakeUser,
) -> None:
    """A read after a committed follow never returns the pre-follow page."""
    a = await make_user("Alice")
    b = await make_user("Bob")
    empty = await feed_service.get_follow_page(db_session, "followers", b.id, 20, 0)
    assert empty.total == 0

    await follow_service.follow_user(db_session, a.id, b.id)

    page = await feed_service.get_follow_page(db_session, "followers", b.id, 20, 0)
    assert page.total == 1


async def test__get_follow_page__follow_refreshes_other_viewers_suggestions(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    make_user: MakeUser,
) -> None:
    """B's first follower makes B a candidate for everyone, not just A and B."""
    a = await make_user("Alice")
    b = await make_user("Bob")
    c = await make_user("Carol")
    before = await feed_service.get_follow_page(db_session, "suggestions", c.id, 20, 0)
    assert before.total == 0

    await follow_service.follow_user(db_session, a.id, b.id)

    after = await feed_service.get_follow_page(db_session, "suggestions", c.id, 20, 0)
    assert after.total == 1
    assert [u.id for u in after.items] == [b.id]


async def test__get_user_profile__read_through_then_invalidated_by_follow(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    fake_redis: FakeRedis,
    make_user: MakeUser,
) -> None:
    a = await make_user("Alice")
    b = await make_user("Bob", car_make="BMW")

    profile = await feed_service.get_user_profile(db_session, b.id)
    assert profile.display_name == "Bob"
    assert profile.follower_count == 0
    assert json.loads(await fake_redis.get(f"user:{b.id}"))["car_make"] == "BMW"

    await follow_service.follow_user(db_session, a.id, b.id)
    assert await fake_redis.exists(f"user:{b.id}") == 0

    refreshed = await feed_service.get_user_profile(db_session, b.id)
    assert refreshed.follower_count == 1


async def test__get_user_profile__missing_user_raises_not_found(
    db_session: AsyncSession,
    feed_service: FeedService,
) -> None:
    with pytest.raises(NotFoundError):
        await feed_service.get_user_profile(db_session, uuid4())


async def test__get_follow_page__suggestions_return_suggestion_page(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me", car_make="Honda", car_model="S2000")
    candidate = await make_user("Candidate", car_make="Honda", car_model="S2000")
    fan = await make_user("Fan")
    await follow_service.follow_user(db_session, fan.id, candidate.id)

    page = await feed_service.get_follow_page(db_session, "suggestions", me.id, 20, 0)
    cached = await feed_service.get_follow_page(db_session, "suggestions", me.id, 20, 0)

    assert isinstance(page, SuggestionPage)
    assert isinstance(cached, SuggestionPage)
    assert cached.items[0].car_similarity == 3


async def test__get_follow_page__unknown_type_is_invalid(
    db_session: AsyncSession,
    feed_service: FeedService,
    make_user: MakeUser,
) -> None:
    user = await make_user()

    with pytest.raises(InvalidOperationError) as exc_info:
        await feed_service.get_follow_page(db_session, "friends", user.id, 20, 0)

    assert exc_info.value.code == "invalid_list_type"


async def test__get_follow_page__missing_user_raises_not_found(
    db_session: AsyncSession,
    feed_service: FeedService,
) -> None:
    with pytest.raises(NotFoundError):
        await feed_service.get_follow_page(db_session, "following", uuid4(), 20, 0)


# ---------------------------------------------------------------------------
# assemble_feed
# ---------------------------------------------------------------------------


async def test__assemble_feed__merges_all_sections(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    make_user: MakeUser,
    make_event: MakeEvent,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    me = await make_user("Me")
    friend = await make_user("Friend")
    stranger = await make_user("Stranger")
    await follow_service.follow_user(db_session, me.id, friend.id)
    await follow_service.follow_user(db_session, stranger.id, me.id)

    async with session_factory() as session:
        session.add_all([
            SocialPost(author_id=friend.id, content="Fresh tires", hashtags=["track"]),
            SocialPost(author_id=stranger.id, content="Not in my feed", hashtags=[]),
            Route(creator_id=friend.id, name="Coast Loop", total_distance=42.5),
            Route(creator_id=friend.id, name="Private Loop", is_public=False),
        ])
        await session.commit()
    upcoming = await make_event(title="Night Meet")
    await make_event(title="Last Year", start_date=datetime.now(UTC) - timedelta(days=30))

    feed = await feed_service.assemble_feed(me.id, limit=10, offset=0)

    assert [u.id for u in feed.following.items] == [friend.id]
    assert [u.id for u in feed.followers.items] == [stranger.id]
    assert feed.suggestions is not None
    assert [p.content for p in feed.posts] == ["Fresh tires"]
    assert feed.posts[0].author_name == "Friend"
    assert [r.name for r in feed.routes] == ["Coast Loop"]
    assert [e.id for e in feed.events] == [upcoming.id]


async def test__assemble_feed__include_limits_sections(
    feed_service: FeedService,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me")

    feed = await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["events"])

    assert feed.events == []
    assert feed.followers is None
    assert feed.posts is None


async def test__assemble_feed__cache_key_includes_every_parameter(
    feed_service: FeedService,
    fake_redis: FakeRedis,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me")

    await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["posts", "events"])
    await feed_service.assemble_feed(me.id, limit=5, offset=5, include=["events", "posts"])
    await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["events"])

    keys = sorted(k.decode() for k in await fake_redis.keys(f"feed:{me.id}:*"))
    assert keys == [
        f"feed:{me.id}:5:0:events",
        f"feed:{me.id}:5:0:events,posts",
        f"feed:{me.id}:5:5:events,posts",
    ]


async def test__assemble_feed__serves_cached_feed(
    feed_service: FeedService,
    fake_redis: FakeRedis,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me")
    first = await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["events"])

    stored = json.loads(await fake_redis.get(f"feed:{me.id}:5:0:events"))
    assert stored["user_id"] == str(me.id)

    with patch.object(feed_service, "_upcoming_events", AsyncMock()) as upcoming:
        second = await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["events"])

    upcoming.assert_not_called()
    assert second == first


async def test__assemble_feed__follow_invalidates_both_users_feeds(
    db_session: AsyncSession,
    feed_service: FeedService,
    follow_service: FollowService,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me")
    friend = await make_user("Friend")
    before = await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["following"])
    friend_before = await feed_service.assemble_feed(
        friend.id, limit=5, offset=0, include=["followers"],
    )
    assert before.following.total == 0
    assert friend_before.followers.total == 0

    await follow_service.follow_user(db_session, me.id, friend.id)

    after = await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["following"])
    friend_after = await feed_service.assemble_feed(
        friend.id, limit=5, offset=0, include=["followers"],
    )
    assert after.following.total == 1
    assert friend_after.followers.total == 1


async def test__assemble_feed__unknown_section_is_invalid(
    feed_service: FeedService,
    make_user: MakeUser,
) -> None:
    me = await make_user("Me")

    with pytest.raises(InvalidOperationError):
        await feed_service.assemble_feed(me.id, limit=5, offset=0, include=["stories"])


def test__parse_feed_sections__defaults_to_all_and_dedupes() -> None:
    assert [str(s) for s in parse_feed_sections(None)] == [
        "events", "followers", "following", "posts", "routes", "suggestions",
    ]
    assert [str(s) for s in parse_feed_sections(["posts", "events", "posts"])] == [
        "events", "posts",
    ]

"""Read-through cache entries for follow lists, profiles, events, and feeds."""
import json
import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)


class FollowListType(StrEnum):
    """Kinds of paginated follow lists served from the cache."""

    FOLLOWERS = "followers"
    FOLLOWING = "following"
    SUGGESTIONS = "suggestions"


class FeedCache:
    """
    Cache for read-side snapshots that depend on the follow graph or event counters.

    Entries are JSON snapshots with a TTL. They are never updated in place: any
    mutation that changes the underlying rows deletes the affected keys after its
    transaction commits, and the next read repopulates them from the store.

    Key layout:
    - follow:<type>:<user_id>:<limit>:<offset>
    - user:<user_id>
    - event:<event_id>
    - feed:<user_id>:<limit>:<offset>:<include>
    """

    def __init__(self, redis_client: "RedisClient") -> None:
        """Initialize the cache with a Redis client."""
        self._redis = redis_client

    @staticmethod
    def follow_list_key(
        list_type: FollowListType | str, user_id: UUID, limit: int, offset: int,
    ) -> str:
        """Key for one page of a follow list."""
        return f"follow:{list_type}:{user_id}:{limit}:{offset}"

    @staticmethod
    def user_key(user_id: UUID) -> str:
        """Key for a cached user card (see FeedService.get_user_profile)."""
        return f"user:{user_id}"

    @staticmethod
    def event_key(event_id: UUID) -> str:
        """Key for a cached event snapshot."""
        return f"event:{event_id}"

    @staticmethod
    def feed_key(user_id: UUID, limit: int, offset: int, include: list[str]) -> str:
        """Key for an assembled feed. Every query parameter is part of the key."""
        return f"feed:{user_id}:{limit}:{offset}:{','.join(sorted(include))}"

    async def get_json(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or when Redis is unavailable."""
        data = await self._redis.get(key)
        if data is None:
            logger.debug("cache_miss key=%s", key)
            return None
        try:
            value = json.loads(data)
        except ValueError:
            # Corrupt entry: drop it and treat as a miss
            logger.warning("cache_corrupt_entry", extra={"key": key})
            await self._redis.delete(key)
            return None
        logger.debug("cache_hit key=%s", key)
        return value

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serializable snapshot with a TTL."""
        stored = await self._redis.setex(key, ttl_seconds, json.dumps(value, default=str))
        if not stored:
            logger.debug("cache_set_skipped key=%s", key)

    async def invalidate_follow_edge(self, follower_id: UUID, following_id: UUID) -> bool:
        """
        Delete every cached entry affected by a follow edge change.

        Covers all pages of the followee's followers list and the follower's
        following list, both users' feeds, and both profiles. Suggestion pages are
        dropped for every viewer, along with any feed that embeds suggestions: the
        followee's follower_count feeds the candidate filter and the ranking.

        Returns False if any delete failed. Failures are logged, never raised.
        """
        if not self._redis.is_connected:
            # Nothing can be served from a cache that is down
            return False
        patterns = [
            f"follow:{FollowListType.FOLLOWERS}:{following_id}:*",
            f"follow:{FollowListType.FOLLOWING}:{follower_id}:*",
            f"follow:{FollowListType.SUGGESTIONS}:*",
            f"feed:{follower_id}:*",
            f"feed:{following_id}:*",
            f"feed:*{FollowListType.SUGGESTIONS}*",
        ]
        ok = True
        for pattern in patterns:
            ok = await self._redis.delete_pattern(pattern) and ok
        ok = await self._redis.delete(
            self.user_key(follower_id), self.user_key(following_id),
        ) and ok
        if not ok:
            logger.warning(
                "cache_invalidation_failed",
                extra={"follower_id": str(follower_id), "following_id": str(following_id)},
            )
        return ok

    async def invalidate_user(self, user_id: UUID) -> bool:
        """Delete a cached profile and the user's follow-list pages."""
        if not self._redis.is_connected:
            return False
        ok = True
        for list_type in FollowListType:
            ok = await self._redis.delete_pattern(f"follow:{list_type}:{user_id}:*") and ok
        ok = await self._redis.delete(self.user_key(user_id)) and ok
        if not ok:
            logger.warning("cache_invalidation_failed", extra={"user_id": str(user_id)})
        return ok

    async def invalidate_event(self, event_id: UUID) -> bool:
        """Delete the cached event snapshot. Failures are logged, never raised."""
        if not self._redis.is_connected:
            return False
        ok = await self._redis.delete(self.event_key(event_id))
        if not ok:
            logger.warning("cache_invalidation_failed", extra={"event_id": str(event_id)})
        return ok

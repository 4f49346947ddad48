"""
Follow graph service.

The graph is stored as one row per directed edge in the follows table. Both
"A follows B" views (A's following list and B's follower list) are derived from
that row, and the users' follower_count / following_count columns are
recomputed from the edge table inside the same transaction as every edge
change. Counters therefore always equal the size of the derived sets after a
mutation commits, and can never go negative.
"""
import logging
from uuid import UUID

from sqlalchemy import case, delete, exists, func, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.feed_cache import FeedCache
from models.follow import Follow
from models.user import User
from schemas.follow import CounterReport, FollowStatusResponse
from schemas.user import SuggestedUser, SuggestionPage, UserPage, UserSummary
from services.exceptions import ConflictError, InvalidOperationError, NotFoundError
from services.utils import atomic

logger = logging.getLogger(__name__)


def _follower_count_subquery(user_id: UUID):  # noqa: ANN202
    return (
        select(func.count())
        .select_from(Follow)
        .where(Follow.following_id == user_id)
        .scalar_subquery()
    )


def _following_count_subquery(user_id: UUID):  # noqa: ANN202
    return (
        select(func.count())
        .select_from(Follow)
        .where(Follow.follower_id == user_id)
        .scalar_subquery()
    )


async def _lock_users(db: AsyncSession, *user_ids: UUID) -> dict[UUID, User]:
    """
    Load and row-lock users in a stable (sorted) order.

    Locking in a fixed order keeps two opposite-direction follows between the
    same pair from deadlocking. Dialects without row locks ignore FOR UPDATE.
    """
    result = await db.execute(
        select(User)
        .where(User.id.in_(user_ids))
        .order_by(User.id)
        .with_for_update(),
    )
    return {user.id: user for user in result.scalars().all()}


async def _recompute_counters(db: AsyncSession, *users: User) -> None:
    """
    Set each user's counters to the edge-table counts.

    The loaded instances are refreshed afterwards so callers holding them
    (sessions use expire_on_commit=False) see the committed values.
    """
    for user in users:
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                follower_count=_follower_count_subquery(user.id),
                following_count=_following_count_subquery(user.id),
            )
            .execution_options(synchronize_session=False),
        )
    for user in users:
        await db.refresh(user, attribute_names=["follower_count", "following_count"])


async def _edge_exists(db: AsyncSession, follower_id: UUID, following_id: UUID) -> bool:
    result = await db.scalar(
        select(
            exists().where(
                Follow.follower_id == follower_id,
                Follow.following_id == following_id,
            ),
        ),
    )
    return bool(result)


async def _require_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


class FollowService:
    """Follow/unfollow mutations and the follower/following/suggestion reads."""

    def __init__(self, cache: FeedCache, operation_timeout: float = 5.0) -> None:
        self._cache = cache
        self._operation_timeout = operation_timeout

    async def follow_user(
        self, db: AsyncSession, follower_id: UUID, following_id: UUID,
    ) -> None:
        """
        Create the edge follower_id -> following_id.

        Not idempotent: following someone already followed is a conflict.

        Raises:
            InvalidOperationError: If follower_id == following_id.
            NotFoundError: If either user does not exist.
            ConflictError: If the edge already exists (including a concurrent duplicate).
            TransientError: If the store failed or the operation timed out.
        """
        if follower_id == following_id:
            raise InvalidOperationError("Users cannot follow themselves", code="self_follow")

        async with atomic(db, "follow_user", self._operation_timeout):
            users = await _lock_users(db, follower_id, following_id)
            if follower_id not in users:
                raise NotFoundError("user", follower_id)
            if following_id not in users:
                raise NotFoundError("user", following_id)

            if await _edge_exists(db, follower_id, following_id):
                raise ConflictError("Already following this user", code="already_following")

            db.add(Follow(follower_id=follower_id, following_id=following_id))
            try:
                await db.flush()
            except IntegrityError as e:
                # A concurrent follow for the same pair committed first
                raise ConflictError(
                    "Already following this user", code="already_following",
                ) from e

            await _recompute_counters(db, users[follower_id], users[following_id])

        logger.info(
            "user_followed",
            extra={"follower_id": str(follower_id), "following_id": str(following_id)},
        )
        await self._cache.invalidate_follow_edge(follower_id, following_id)

    async def unfollow_user(
        self, db: AsyncSession, follower_id: UUID, following_id: UUID,
    ) -> bool:
        """
        Remove the edge follower_id -> following_id if it exists.

        Idempotent: unfollowing someone not followed succeeds and changes nothing
        (beyond resyncing the two users' counters).

        Returns True if an edge was removed.

        Raises:
            NotFoundError: If the follower does not exist.
            TransientError: If the store failed or the operation timed out.
        """
        async with atomic(db, "unfollow_user", self._operation_timeout):
            users = await _lock_users(db, follower_id, following_id)
            if follower_id not in users:
                raise NotFoundError("user", follower_id)

            result = await db.execute(
                delete(Follow).where(
                    Follow.follower_id == follower_id,
                    Follow.following_id == following_id,
                ),
            )
            removed = result.rowcount > 0

            # The followee may have been deleted; its edges went with it
            await _recompute_counters(db, *users.values())

        logger.info(
            "user_unfollowed",
            extra={
                "follower_id": str(follower_id),
                "following_id": str(following_id),
                "removed": removed,
            },
        )
        await self._cache.invalidate_follow_edge(follower_id, following_id)
        return removed

    async def get_follow_status(
        self, db: AsyncSession, follower_id: UUID, following_id: UUID,
    ) -> FollowStatusResponse:
        """Whether follower_id currently follows following_id."""
        return FollowStatusResponse(
            follower_id=follower_id,
            following_id=following_id,
            is_following=await _edge_exists(db, follower_id, following_id),
        )

    async def list_followers(
        self, db: AsyncSession, user_id: UUID, limit: int, offset: int,
    ) -> UserPage:
        """
        Page of users who follow user_id, ordered by display name.

        total is the size of the whole follower set, not of the page.
        """
        await _require_user(db, user_id)
        return await self._edge_page(
            db,
            match=Follow.following_id == user_id,
            join_on=User.id == Follow.follower_id,
            limit=limit,
            offset=offset,
        )

    async def list_following(
        self, db: AsyncSession, user_id: UUID, limit: int, offset: int,
    ) -> UserPage:
        """
        Page of users that user_id follows, ordered by display name.

        total is the size of the whole following set, not of the page.
        """
        await _require_user(db, user_id)
        return await self._edge_page(
            db,
            match=Follow.follower_id == user_id,
            join_on=User.id == Follow.following_id,
            limit=limit,
            offset=offset,
        )

    async def _edge_page(
        self, db: AsyncSession, *, match, join_on, limit: int, offset: int,  # noqa: ANN001
    ) -> UserPage:
        total = await db.scalar(select(func.count()).select_from(Follow).where(match)) or 0
        result = await db.execute(
            select(User)
            .join(Follow, join_on)
            .where(match)
            .order_by(User.display_name, User.id)
            .limit(limit)
            .offset(offset),
        )
        items = [UserSummary.model_validate(u) for u in result.scalars().all()]
        return UserPage(
            items=items,
            total=total,
            offset=offset,
            limit=limit,
            has_more=offset + len(items) < total,
        )

    async def suggest_users(
        self, db: AsyncSession, user_id: UUID, limit: int, offset: int,
    ) -> SuggestionPage:
        """
        Rank users that user_id might want to follow.

        Candidates exclude user_id and everyone already followed, and must have at
        least one follower (users nobody follows are never suggested). Ranking:
        same make and model (3) > same make (2) > other (1), then follower_count
        descending, then newest account first.
        """
        user = await _require_user(db, user_id)

        already_following = select(Follow.following_id).where(Follow.follower_id == user_id)
        candidate_filter = (
            User.id != user_id,
            User.id.not_in(already_following),
            User.follower_count > 0,
        )

        if user.car_make is not None:
            same_make = User.car_make == user.car_make
            whens = [(same_make, 2)]
            # A missing model never counts as a match, on either side
            if user.car_model is not None:
                whens.insert(0, (same_make & (User.car_model == user.car_model), 3))
            similarity = case(*whens, else_=1)
        else:
            # No car on file: nothing to match against
            similarity = literal(1)
        similarity = similarity.label("car_similarity")

        total = await db.scalar(
            select(func.count()).select_from(User).where(*candidate_filter),
        ) or 0
        result = await db.execute(
            select(User, similarity)
            .where(*candidate_filter)
            .order_by(
                similarity.desc(),
                User.follower_count.desc(),
                User.created_at.desc(),
                User.id.desc(),
            )
            .limit(limit)
            .offset(offset),
        )
        items = [
            SuggestedUser(
                **UserSummary.model_validate(candidate).model_dump(),
                automotive_interests=candidate.automotive_interests or [],
                car_similarity=score,
            )
            for candidate, score in result.all()
        ]
        return SuggestionPage(
            items=items,
            total=total,
            offset=offset,
            limit=limit,
            has_more=offset + len(items) < total,
        )

    async def verify_counters(self, db: AsyncSession, user_id: UUID) -> CounterReport:
        """Compare a user's stored counters with the edge table."""
        row = (
            await db.execute(
                select(
                    User.follower_count,
                    User.following_count,
                    _follower_count_subquery(user_id),
                    _following_count_subquery(user_id),
                ).where(User.id == user_id),
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("user", user_id)
        return CounterReport(
            user_id=user_id,
            follower_count=row[0],
            following_count=row[1],
            actual_follower_count=row[2],
            actual_following_count=row[3],
        )

    async def rebuild_counters(self, db: AsyncSession, user_id: UUID) -> CounterReport:
        """Repair drifted counters for a user from the edge table."""
        async with atomic(db, "rebuild_counters", self._operation_timeout):
            users = await _lock_users(db, user_id)
            if user_id not in users:
                raise NotFoundError("user", user_id)
            await _recompute_counters(db, users[user_id])

        report = await self.verify_counters(db, user_id)
        logger.info(
            "follow_counters_rebuilt",
            extra={
                "user_id": str(user_id),
                "follower_count": report.follower_count,
                "following_count": report.following_count,
            },
        )
        await self._cache.invalidate_user(user_id)
        return report

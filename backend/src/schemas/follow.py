"""Pydantic schemas for follow endpoints."""
from uuid import UUID

from pydantic import BaseModel


class FollowCreate(BaseModel):
    """Schema for following a user. The follower is the authenticated caller."""

    following_id: UUID


class FollowAck(BaseModel):
    """Acknowledgement of a follow/unfollow mutation."""

    follower_id: UUID
    following_id: UUID
    following: bool


class FollowStatusResponse(BaseModel):
    """Whether follower_id currently follows following_id."""

    follower_id: UUID
    following_id: UUID
    is_following: bool


class CounterReport(BaseModel):
    """Materialized follow counters next to the edge-table counts."""

    user_id: UUID
    follower_count: int
    following_count: int
    actual_follower_count: int
    actual_following_count: int

    @property
    def in_sync(self) -> bool:
        """True when the stored counters match the edge table."""
        return (
            self.follower_count == self.actual_follower_count
            and self.following_count == self.actual_following_count
        )

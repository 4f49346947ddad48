"""Pydantic schemas for user summaries and follow-list pages."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class UserSummary(BaseModel):
    """Compact user card shown in follower/following lists."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: str
    profile_image_url: str | None = None
    car_make: str | None = None
    car_model: str | None = None
    car_year: int | None = None
    follower_count: int
    following_count: int
    is_verified: bool = False


class SuggestedUser(UserSummary):
    """User suggestion with its car similarity score (3 make+model, 2 make, 1 none)."""

    automotive_interests: list[str] = []
    car_similarity: int


class UserPage(BaseModel):
    """One page of users with the size of the full result set."""

    items: list[UserSummary]
    total: int
    offset: int
    limit: int
    has_more: bool


class SuggestionPage(BaseModel):
    """One page of suggested users with the total candidate count."""

    items: list[SuggestedUser]
    total: int
    offset: int
    limit: int
    has_more: bool

"""Pydantic schemas for the assembled feed."""
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from schemas.user import SuggestionPage, UserPage


class FeedSection(StrEnum):
    """Sections that can be requested in a feed."""

    FOLLOWERS = "followers"
    FOLLOWING = "following"
    SUGGESTIONS = "suggestions"
    POSTS = "posts"
    EVENTS = "events"
    ROUTES = "routes"


class FeedPost(BaseModel):
    """Post by a followed user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_id: UUID
    author_name: str | None = None
    content: str
    hashtags: list[str]
    like_count: int
    comment_count: int
    created_at: datetime


class FeedEvent(BaseModel):
    """
    Upcoming event.

    Participant counters are deliberately not included: they change on every
    registration and are served by the event:<id> entry instead.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organizer_id: UUID | None
    title: str
    start_date: datetime | None


class FeedRoute(BaseModel):
    """Public route shared by a followed user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    creator_id: UUID
    name: str
    difficulty_level: str
    total_distance: float
    created_at: datetime


class FeedResponse(BaseModel):
    """Everything requested for one feed page. Unrequested sections are None."""

    user_id: UUID
    limit: int
    offset: int
    followers: UserPage | None = None
    following: UserPage | None = None
    suggestions: SuggestionPage | None = None
    posts: list[FeedPost] | None = None
    events: list[FeedEvent] | None = None
    routes: list[FeedRoute] | None = None

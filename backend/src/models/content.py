"""Social posts and routes - read-only content surfaced in the feed."""
from uuid import UUID

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class SocialPost(Base, UUIDv7Mixin, TimestampMixin):
    """A social post authored by a user."""

    __tablename__ = "social_posts"

    author_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    hashtags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Route(Base, UUIDv7Mixin, TimestampMixin):
    """A driving route shared by a user."""

    __tablename__ = "routes"

    creator_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty_level: Mapped[str] = mapped_column(String(20), nullable=False, default="easy")
    total_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

"""Follow edge model - one row per directed follow relationship."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class Follow(Base):
    """
    Directed edge: follower_id follows following_id.

    The composite primary key is the single source of truth for both
    "who A follows" and "who follows B", so the two sides of an edge cannot
    drift apart. It also rejects concurrent duplicate follows.
    """

    __tablename__ = "follows"

    follower_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    following_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("follower_id <> following_id", name="ck_follows_no_self_follow"),
        # Reverse lookups ("followers of X") - the PK already covers follower_id lookups
        Index("ix_follows_following_id", "following_id"),
    )

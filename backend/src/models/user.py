"""User model with car metadata and materialized follow counters."""
from sqlalchemy import JSON, Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class User(Base, UUIDv7Mixin, TimestampMixin):
    """
    User model - identity plus social counters.

    follower_count and following_count are materialized counts over the follows
    table. They are recomputed from that table inside every follow/unfollow
    transaction and must never be patched independently.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Car metadata (used for suggestion ranking)
    car_make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    car_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    car_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    automotive_interests: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list,
    )

    follower_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    following_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("follower_count >= 0", name="ck_users_follower_count_non_negative"),
        CheckConstraint("following_count >= 0", name="ck_users_following_count_non_negative"),
    )

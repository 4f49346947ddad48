"""Declarative base plus the id and timestamp mixins every table uses."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7


class Base(DeclarativeBase):
    """Registry root; models/__init__.py imports every table onto it."""

    pass


class UUIDv7Mixin:
    """
    Mixin that adds a time-ordered UUIDv7 primary key.

    UUIDv7 values sort by creation time, so "newest first" orderings can use the
    primary key as a stable tie-breaker.
    """

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid7)


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at columns.

    All timestamps are timezone-aware (stored as TIMESTAMP WITH TIME ZONE in PostgreSQL).
    Defaults are generated by the database so rows written by raw SQL get them too.
    eager_defaults fetches them back on flush, so instances stay readable after
    commit without a lazy load.
    """

    __mapper_args__ = {"eager_defaults": True}  # noqa: RUF012

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

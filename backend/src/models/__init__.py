"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.user import User
from models.follow import Follow
from models.event import Event
from models.registration import EventRegistration, RegistrationStatus
from models.content import Route, SocialPost

__all__ = [
    "Base",
    "Event",
    "EventRegistration",
    "Follow",
    "RegistrationStatus",
    "Route",
    "SocialPost",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
]

"""Event reads, served through the event:<id> cache entry."""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.feed_cache import FeedCache
from models.event import Event
from models.user import User
from schemas.event import EventResponse
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class EventService:
    """Read-through access to event snapshots."""

    def __init__(self, cache: FeedCache, ttl_seconds: int = 600) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def get_event(self, db: AsyncSession, event_id: UUID) -> EventResponse:
        """
        Get an event with its organizer's display name.

        The snapshot includes the participant counters, so every registration
        change deletes the entry after its commit.

        Raises:
            NotFoundError: If the event does not exist.
        """
        key = FeedCache.event_key(event_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return EventResponse.model_validate(cached)

        row = (
            await db.execute(
                select(Event, User.display_name)
                .outerjoin(User, User.id == Event.organizer_id)
                .where(Event.id == event_id)
                .execution_options(populate_existing=True),
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("event", event_id)

        event, organizer_name = row
        response = EventResponse.model_validate(event).model_copy(
            update={"organizer_name": organizer_name},
        )
        await self._cache.set_json(key, response.model_dump(mode="json"), self._ttl_seconds)
        logger.debug("event_cache_populated event_id=%s", event_id)
        return response

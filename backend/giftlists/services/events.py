import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from giftlists.db.repositories import EventRepository
from giftlists.models.models import EventType, GiftEvent


logger = logging.getLogger("giftlists.events")

# Events that document a state transition must commit with it.
TRANSITION_EVENTS = frozenset({EventType.CREATED, EventType.RESERVED, EventType.UNRESERVED, EventType.UPDATED})


class EventRecorder:
    """Append-only audit trail of gift/list events."""

    async def record(
        self,
        session: AsyncSession,
        event_type: EventType,
        *,
        list_id: int,
        gift_id: int | None = None,
        actor_id: int | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> GiftEvent:
        """Add the event to the caller's transaction. Errors propagate."""
        event = GiftEvent(
            gift_id=gift_id,
            list_id=list_id,
            user_id=actor_id,
            event_type=event_type.value,
            details=details,
            ip_address=ip_address,
        )
        return await EventRepository(session).append(event)

    async def record_best_effort(
        self,
        session: AsyncSession,
        event_type: EventType,
        *,
        list_id: int,
        gift_id: int | None = None,
        actor_id: int | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """Record an informational event without ever failing the caller.

        Runs in a savepoint and commits the session; on error the savepoint is
        rolled back, the failure is logged and False is returned.
        """
        if event_type in TRANSITION_EVENTS:
            raise ValueError(f"{event_type.value} events must be recorded in the transition's transaction")
        try:
            async with session.begin_nested():
                await self.record(
                    session,
                    event_type,
                    list_id=list_id,
                    gift_id=gift_id,
                    actor_id=actor_id,
                    details=details,
                    ip_address=ip_address,
                )
            await session.commit()
            return True
        except SQLAlchemyError as exc:
            logger.warning("Failed to record %s event list_id=%s: %s", event_type.value, list_id, exc)
            try:
                await session.rollback()
            except SQLAlchemyError:
                logger.debug("Rollback after failed %s event also failed", event_type.value, exc_info=True)
            return False


event_recorder = EventRecorder()

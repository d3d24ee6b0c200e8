"""Typed data access for the reservation core.

Each repository wraps the session of the unit of work it was created for and
exposes only the operations the core needs; nothing here commits.
"""
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from giftlists.models.models import (
    Gift,
    GiftEvent,
    GiftList,
    GiftStatus,
    Notification,
    Reservation,
    ReservationStatus,
    User,
    utcnow,
)


class GiftRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_for_update(self, gift_id: int) -> Gift | None:
        """Re-read the gift row and lock it for the rest of the transaction.

        ``populate_existing`` discards any identity-map copy so the status is
        always the one currently committed in the store.
        """
        result = await self.session.execute(
            select(Gift)
            .where(Gift.id == gift_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition_status(self, gift_id: int, expected: GiftStatus, new: GiftStatus) -> bool:
        """Compare-and-set the gift status; False when the row was not in ``expected``."""
        result = await self.session.execute(
            update(Gift)
            .where(Gift.id == gift_id, Gift.status == expected.value)
            .values(status=new.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_list(self, list_id: int) -> list[Gift]:
        result = await self.session.execute(select(Gift).where(Gift.list_id == list_id).order_by(Gift.id))
        return list(result.scalars().all())


class ListRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, list_id: int) -> GiftList | None:
        return await self.session.get(GiftList, list_id)

    async def get_by_slug(self, slug: str) -> GiftList | None:
        result = await self.session.execute(select(GiftList).where(GiftList.slug == slug))
        return result.scalar_one_or_none()

    async def owned_by(self, owner_id: int) -> list[GiftList]:
        result = await self.session.execute(
            select(GiftList).where(GiftList.owner_id == owner_id).order_by(GiftList.id)
        )
        return list(result.scalars().all())


class UserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)


class ReservationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_active_for_gift(self, gift_id: int) -> Reservation | None:
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.gift_id == gift_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
            .order_by(Reservation.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def insert(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def cancel(
        self,
        reservation: Reservation,
        *,
        reason: str | None,
        cancelled_by: int | None,
        cancelled_at: datetime | None = None,
    ) -> Reservation:
        reservation.status = ReservationStatus.CANCELLED.value
        reservation.cancellation_reason = reason
        reservation.cancelled_at = cancelled_at or utcnow()
        reservation.cancelled_by_user_id = cancelled_by
        await self.session.flush()
        return reservation

    async def active_by_gift(self, gift_ids: list[int]) -> dict[int, Reservation]:
        if not gift_ids:
            return {}
        result = await self.session.execute(
            select(Reservation).where(
                Reservation.gift_id.in_(gift_ids),
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
        )
        return {reservation.gift_id: reservation for reservation in result.scalars().all()}

    async def status_counts(self, list_ids: list[int]) -> dict[str, int]:
        if not list_ids:
            return {"active": 0, "cancelled": 0, "anonymous": 0}
        result = await self.session.execute(
            select(Reservation.status, Reservation.is_anonymous, func.count(Reservation.id))
            .where(Reservation.list_id.in_(list_ids))
            .group_by(Reservation.status, Reservation.is_anonymous)
        )
        counts = {"active": 0, "cancelled": 0, "anonymous": 0}
        for status, is_anonymous, count in result.all():
            counts[status] = counts.get(status, 0) + count
            if is_anonymous:
                counts["anonymous"] += count
        return counts


class EventRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(self, event: GiftEvent) -> GiftEvent:
        self.session.add(event)
        await self.session.flush()
        return event


class NotificationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, notification: Notification) -> Notification:
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def get(self, notification_id: int) -> Notification | None:
        return await self.session.get(Notification, notification_id)

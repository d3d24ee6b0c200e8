"""Gift reservation lifecycle.

A gift moves ``available -> reserved -> available``; each claim is a
``Reservation`` row that moves ``active -> cancelled`` and is never deleted.
Both transitions run in a single unit of work that re-reads and locks the gift
row first, so the audit event and the owner notification commit or roll back
together with the status change.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlists.core.config import settings
from giftlists.db.uow import UnitOfWork
from giftlists.models.models import (
    EventType,
    GiftStatus,
    NotificationType,
    Reservation,
    ReservationStatus,
)
from giftlists.services.authorization import can_cancel
from giftlists.services.errors import Conflict, Forbidden, Internal, NotFound, ReservationError, ValidationFailed
from giftlists.services.events import EventRecorder, event_recorder
from giftlists.services.notifications import NotificationDispatcher, notification_dispatcher


logger = logging.getLogger("giftlists.reservations")


@dataclass(frozen=True)
class ReserveCommand:
    gift_id: int
    reserver_id: int | None = None
    display_name: str | None = None
    email: str | None = None
    message: str | None = None
    anonymous: bool = False
    ip_address: str | None = None


@dataclass(frozen=True)
class ReserveResult:
    reservation_id: int
    gift_id: int
    notification_id: int | None = None
    status: str = GiftStatus.RESERVED.value


@dataclass(frozen=True)
class UnreserveCommand:
    gift_id: int
    caller_id: int | None = None
    reason: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class UnreserveResult:
    gift_id: int
    reservation_id: int | None
    by_list_owner: bool
    self_healed: bool = False
    notification_id: int | None = None
    status: str = GiftStatus.AVAILABLE.value


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


_ACTIVE_INDEX = "ux_gift_reservations_active_gift"
# SQLite reports partial unique indexes by their columns.
_SQLITE_ACTIVE_INDEX = "UNIQUE constraint failed: gift_reservations.gift_id"


def _lost_active_race(exc: IntegrityError) -> bool:
    constraint = getattr(exc.orig, "constraint_name", None) or getattr(exc.orig.__cause__, "constraint_name", None)
    if constraint is not None:
        return constraint == _ACTIVE_INDEX
    message = str(exc.orig)
    return _ACTIVE_INDEX in message or _SQLITE_ACTIVE_INDEX in message


class ReservationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        events: EventRecorder = event_recorder,
        notifications: NotificationDispatcher = notification_dispatcher,
    ) -> None:
        self._session_factory = session_factory
        self._events = events
        self._notifications = notifications

    async def reserve(self, command: ReserveCommand) -> ReserveResult:
        name = _clean(command.display_name)
        if command.reserver_id is None and not name:
            raise ValidationFailed("A name is required to reserve a gift", gift_id=command.gift_id)

        try:
            async with UnitOfWork(self._session_factory) as uow:
                result = await self._reserve(uow, command, name)
        except ReservationError:
            raise
        except IntegrityError as exc:
            if not _lost_active_race(exc):
                logger.exception("Reserve hit an integrity error gift_id=%s", command.gift_id)
                raise Internal("Server error", gift_id=command.gift_id) from exc
            logger.info("Reserve lost a concurrent race gift_id=%s: %s", command.gift_id, exc.orig)
            raise Conflict(
                "This gift has already been reserved",
                gift_id=command.gift_id,
                reason=Conflict.ALREADY_RESERVED,
            ) from exc
        except SQLAlchemyError as exc:
            logger.exception("Reserve failed and was rolled back gift_id=%s", command.gift_id)
            raise Internal("Server error", gift_id=command.gift_id) from exc

        logger.info(
            "Gift reserved gift_id=%s reservation_id=%s anonymous=%s",
            result.gift_id,
            result.reservation_id,
            command.anonymous,
        )
        return result

    async def _reserve(self, uow: UnitOfWork, command: ReserveCommand, name: str | None) -> ReserveResult:
        gift = await uow.gifts.get_for_update(command.gift_id)
        if gift is None:
            raise NotFound("Gift not found", gift_id=command.gift_id)

        gift_list = await uow.lists.get(gift.list_id)
        if gift_list is None:
            raise NotFound("List not found", gift_id=gift.id)

        if gift.status != GiftStatus.AVAILABLE.value:
            raise Conflict("This gift has already been reserved", gift_id=gift.id, reason=Conflict.ALREADY_RESERVED)

        email = _clean(command.email)
        if command.reserver_id is not None and (not name or (not email and not command.anonymous)):
            user = await uow.users.get(command.reserver_id)
            if user is not None:
                name = name or user.name
                if not command.anonymous:
                    email = email or user.email
        if not name:
            raise ValidationFailed("A name is required to reserve a gift", gift_id=gift.id)

        if not await uow.gifts.transition_status(gift.id, GiftStatus.AVAILABLE, GiftStatus.RESERVED):
            raise Conflict("This gift has already been reserved", gift_id=gift.id, reason=Conflict.ALREADY_RESERVED)

        # The raw name of an anonymous reserver never reaches the store.
        stored_name = settings.anonymous_display_name if command.anonymous else name
        reservation = await uow.reservations.insert(
            Reservation(
                gift_id=gift.id,
                list_id=gift.list_id,
                user_id=command.reserver_id,
                name=stored_name,
                email=email,
                message=_clean(command.message),
                is_anonymous=command.anonymous,
                status=ReservationStatus.ACTIVE.value,
                ip_address=command.ip_address,
            )
        )

        await self._events.record(
            uow.session,
            EventType.RESERVED,
            list_id=gift.list_id,
            gift_id=gift.id,
            actor_id=command.reserver_id,
            details={"reservation_id": reservation.id, "is_anonymous": command.anonymous},
            ip_address=command.ip_address,
        )

        notification_id = None
        if not command.anonymous and gift_list.owner_id is not None:
            notification = await self._notifications.enqueue(
                uow.session,
                recipient_id=gift_list.owner_id,
                notification_type=NotificationType.GIFT_RESERVED,
                message=f'{name} reserved the gift "{gift.title}"',
                data={"gift_id": gift.id, "list_id": gift.list_id, "reservation_id": reservation.id},
            )
            notification_id = notification.id

        return ReserveResult(reservation_id=reservation.id, gift_id=gift.id, notification_id=notification_id)

    async def unreserve(self, command: UnreserveCommand) -> UnreserveResult:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                result = await self._unreserve(uow, command)
        except ReservationError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Unreserve failed and was rolled back gift_id=%s", command.gift_id)
            raise Internal("Server error", gift_id=command.gift_id) from exc

        logger.info(
            "Gift released gift_id=%s reservation_id=%s by_list_owner=%s self_healed=%s",
            result.gift_id,
            result.reservation_id,
            result.by_list_owner,
            result.self_healed,
        )
        return result

    async def _unreserve(self, uow: UnitOfWork, command: UnreserveCommand) -> UnreserveResult:
        gift = await uow.gifts.get_for_update(command.gift_id)
        if gift is None:
            raise NotFound("Gift not found", gift_id=command.gift_id)

        if gift.status != GiftStatus.RESERVED.value:
            raise Conflict("This gift is not currently reserved", gift_id=gift.id, reason=Conflict.NOT_RESERVED)

        gift_list = await uow.lists.get(gift.list_id)
        if gift_list is None:
            raise NotFound("List not found", gift_id=gift.id)
        owner_id = gift_list.owner_id

        reason = _clean(command.reason)
        is_owner = command.caller_id is not None and command.caller_id == owner_id
        is_reserver = False

        reservation = await uow.reservations.find_active_for_gift(gift.id)
        if reservation is None:
            # TODO: replace this repair with a reconciliation job that finds
            # reserved gifts without an active reservation.
            logger.warning(
                "Inconsistent state: gift %s is reserved without an active reservation; releasing it",
                gift.id,
            )
        else:
            if not can_cancel(reservation, command.caller_id, owner_id):
                raise Forbidden("You are not allowed to release this gift", gift_id=gift.id)
            is_reserver = reservation.user_id is not None and command.caller_id == reservation.user_id
            await uow.reservations.cancel(reservation, reason=reason, cancelled_by=command.caller_id)

        if not await uow.gifts.transition_status(gift.id, GiftStatus.RESERVED, GiftStatus.AVAILABLE):
            raise Conflict("This gift is not currently reserved", gift_id=gift.id, reason=Conflict.NOT_RESERVED)

        await self._events.record(
            uow.session,
            EventType.UNRESERVED,
            list_id=gift.list_id,
            gift_id=gift.id,
            actor_id=command.caller_id,
            details={
                "reservation_id": reservation.id if reservation else None,
                "reason": reason,
                "by_list_owner": is_owner,
                "self_healed": reservation is None,
            },
            ip_address=command.ip_address,
        )

        notification_id = None
        if reservation is not None and is_reserver and not is_owner and owner_id is not None:
            notification = await self._notifications.enqueue(
                uow.session,
                recipient_id=owner_id,
                notification_type=NotificationType.GIFT_UNRESERVED,
                message=f'{reservation.name} released the gift "{gift.title}"',
                data={"gift_id": gift.id, "list_id": gift.list_id, "reason": reason},
            )
            notification_id = notification.id

        return UnreserveResult(
            gift_id=gift.id,
            reservation_id=reservation.id if reservation else None,
            by_list_owner=is_owner,
            self_healed=reservation is None,
            notification_id=notification_id,
        )

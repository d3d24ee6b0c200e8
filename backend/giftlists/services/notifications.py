import logging
import smtplib
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlists.core.config import settings
from giftlists.core.mailer import MailerNotConfigured, send_notification_email
from giftlists.db.repositories import ListRepository, NotificationRepository, UserRepository
from giftlists.models.models import Notification, NotificationType, utcnow


logger = logging.getLogger("giftlists.notifications")

_TITLES = {
    NotificationType.GIFT_RESERVED: "Gift reserved",
    NotificationType.GIFT_UNRESERVED: "Gift released",
}


class NotificationDispatcher:
    """Owner notifications: an outbox row written with the transition, delivered after commit."""

    async def enqueue(
        self,
        session: AsyncSession,
        *,
        recipient_id: int,
        notification_type: NotificationType,
        message: str,
        data: dict[str, Any],
    ) -> Notification:
        notification = Notification(
            user_id=recipient_id,
            type=notification_type.value,
            title=_TITLES[notification_type],
            message=message,
            data=data,
            is_read=False,
        )
        return await NotificationRepository(session).add(notification)

    async def deliver(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notification_id: int,
    ) -> bool:
        """Send one pending notification by e-mail and mark it delivered.

        Runs outside the reservation transaction. Failures are logged and leave
        ``delivered_at`` empty so delivery can be retried.
        """
        try:
            async with session_factory() as session:
                notification = await NotificationRepository(session).get(notification_id)
                if notification is None:
                    logger.warning("Notification %s vanished before delivery", notification_id)
                    return False
                if notification.delivered_at is not None:
                    return True
                recipient = await UserRepository(session).get(notification.user_id)
                if recipient is None or not recipient.email:
                    logger.info("Notification %s has no deliverable recipient", notification_id)
                    return False

                link = None
                list_id = (notification.data or {}).get("list_id")
                if list_id is not None:
                    gift_list = await ListRepository(session).get(int(list_id))
                    if gift_list is not None:
                        link = f"{settings.frontend_url}/lists/{gift_list.slug}"

                await send_notification_email(
                    to_email=recipient.email,
                    subject=notification.title,
                    body=notification.message,
                    link=link,
                )
                notification.delivered_at = utcnow()
                await session.commit()
                return True
        except MailerNotConfigured:
            return False
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to deliver notification %s: %s", notification_id, exc)
            return False
        except SQLAlchemyError:
            logger.exception("Failed to load notification %s for delivery", notification_id)
            return False


notification_dispatcher = NotificationDispatcher()

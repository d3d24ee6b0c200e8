from datetime import datetime, timezone
from enum import Enum as StrEnumBase
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from giftlists.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PrivacyMode(str, StrEnumBase):
    PUBLIC = "public"
    PRIVATE = "private"
    PASSWORD = "password"


class ListStatus(str, StrEnumBase):
    ACTIVE = "active"
    ARCHIVED = "archived"


class GiftStatus(str, StrEnumBase):
    AVAILABLE = "available"
    RESERVED = "reserved"


class GiftPriority(str, StrEnumBase):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReservationStatus(str, StrEnumBase):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class EventType(str, StrEnumBase):
    CREATED = "created"
    RESERVED = "reserved"
    UNRESERVED = "unreserved"
    VIEWED = "viewed"
    UPDATED = "updated"


class NotificationType(str, StrEnumBase):
    GIFT_RESERVED = "gift_reserved"
    GIFT_UNRESERVED = "gift_unreserved"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    gift_lists: Mapped[list["GiftList"]] = relationship(back_populates="owner")


class GiftList(Base):
    __tablename__ = "gift_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    privacy: Mapped[str] = mapped_column(String(20), default=PrivacyMode.PUBLIC.value, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=ListStatus.ACTIVE.value, nullable=False)
    event_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner: Mapped[User | None] = relationship(back_populates="gift_lists")
    gifts: Mapped[list["Gift"]] = relationship(back_populates="gift_list", cascade="all, delete-orphan")


class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    list_id: Mapped[int] = mapped_column(ForeignKey("gift_lists.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[str] = mapped_column(String(10), default=GiftPriority.MEDIUM.value, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=GiftStatus.AVAILABLE.value, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    gift_list: Mapped[GiftList] = relationship(back_populates="gifts")
    reservations: Mapped[list["Reservation"]] = relationship(
        back_populates="gift",
        cascade="all, delete-orphan",
        order_by="Reservation.id",
    )


class Reservation(Base):
    __tablename__ = "gift_reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gift_id: Mapped[int] = mapped_column(ForeignKey("gifts.id"), nullable=False, index=True)
    list_id: Mapped[int] = mapped_column(ForeignKey("gift_lists.id"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    message: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ReservationStatus.ACTIVE.value, nullable=False)
    reserved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    gift: Mapped[Gift] = relationship(back_populates="reservations")

    __table_args__ = (
        # At most one active reservation per gift, enforced by the store.
        Index(
            "ux_gift_reservations_active_gift",
            "gift_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )


class GiftEvent(Base):
    __tablename__ = "gift_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL for list-level events such as "viewed"
    gift_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    list_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

from datetime import datetime

from pydantic import BaseModel, Field

from giftlists.models.models import GiftPriority, GiftStatus, ListStatus, PrivacyMode


class UnlockRequest(BaseModel):
    password: str = Field(min_length=1, max_length=255)


class GiftPublic(BaseModel):
    id: int
    title: str
    description: str | None = None
    price: float | None = None
    url: str | None = None
    image_url: str | None = None
    category: str | None = None
    priority: GiftPriority = GiftPriority.MEDIUM
    status: GiftStatus
    is_reserved: bool = False
    reserved_by: str | None = None
    reserved_at: datetime | None = None


class GiftListPublic(BaseModel):
    id: int
    slug: str
    title: str
    description: str | None = None
    privacy: PrivacyMode
    status: ListStatus
    event_date: datetime | None = None
    is_owner: bool = False
    gifts: list[GiftPublic]
    total_gifts: int = 0
    reserved_gifts: int = 0
    reservation_percentage: int = 0

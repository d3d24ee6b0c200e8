from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator


class ReserveRequest(BaseModel):
    gift_id: int = Field(gt=0)
    reserver_name: str | None = Field(default=None, max_length=120)
    reserver_email: EmailStr | None = None
    message: str | None = Field(default=None, max_length=1000)
    anonymous: bool = False

    @field_validator("reserver_name", "message")
    @classmethod
    def _strip_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator("reserver_email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class UnreserveRequest(BaseModel):
    gift_id: int = Field(gt=0)
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ReserveResponse(BaseModel):
    success: bool = True
    reservation_id: int
    gift_id: int
    status: Literal["reserved"] = "reserved"


class UnreserveResponse(BaseModel):
    success: bool = True
    gift_id: int
    status: Literal["available"] = "available"


class ErrorResponse(BaseModel):
    success: bool = False
    gift_id: int | None = None
    code: str
    error: str
    reason: str | None = None


class ReservationStats(BaseModel):
    list_id: int | None
    total_gifts: int
    reserved_count: int
    available_count: int
    total_value: float
    reserved_value: float
    reservation_percentage: int
    active_reservations: int
    cancelled_reservations: int
    anonymous_reservations: int

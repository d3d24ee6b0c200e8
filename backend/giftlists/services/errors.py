from fastapi import status


class ReservationError(Exception):
    """Base for every outcome the reservation core reports to its caller."""

    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server error"

    def __init__(self, message: str | None = None, *, gift_id: int | None = None, reason: str | None = None) -> None:
        self.message = message or self.default_message
        self.gift_id = gift_id
        self.reason = reason
        super().__init__(self.message)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "success": False,
            "gift_id": self.gift_id,
            "code": self.code,
            "error": self.message,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationFailed(ReservationError):
    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFound(ReservationError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(ReservationError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The gift has changed state"

    ALREADY_RESERVED = "already_reserved"
    NOT_RESERVED = "not_reserved"


class Forbidden(ReservationError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class Internal(ReservationError):
    pass

"""Audit logging for security-relevant outcomes at the request boundary.

This is the log-based trail (who tried what, from where). Domain events that
document gift state transitions live in the ``gift_events`` table instead,
see ``giftlists.services.events``.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request

from giftlists.core.logger import AUDIT_LOGGER


logger = logging.getLogger(AUDIT_LOGGER)

_SENSITIVE_KEYS = ("password", "token", "secret", "key", "authorization")


class AuditAction(str, Enum):
    """Audit action types."""
    # Access gate
    LIST_PASSWORD_FAILED = "list_password_failed"
    LIST_ACCESS_GRANTED = "list_access_granted"

    # Reservations
    GIFT_RESERVE = "gift_reserve"
    GIFT_UNRESERVE = "gift_unreserve"
    UNRESERVE_FORBIDDEN = "unreserve_forbidden"

    # Anti-forgery
    CSRF_REJECTED = "csrf_rejected"


def client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: ID of the user performing the action
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        event["ip"] = client_ip(request)
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in _SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_list_password(request: Request, user_id: int | None, list_id: int, granted: bool) -> None:
    """Log a password attempt against a protected list."""
    audit_log(
        AuditAction.LIST_ACCESS_GRANTED if granted else AuditAction.LIST_PASSWORD_FAILED,
        request=request,
        user_id=user_id,
        details={"list_id": list_id},
        success=granted,
    )


def audit_reservation_action(
    action: AuditAction,
    request: Request,
    user_id: int | None,
    gift_id: int,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Log a reserve/unreserve outcome."""
    event_details: dict[str, Any] = {"gift_id": gift_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, user_id=user_id, details=event_details, success=success)


def audit_csrf_rejected(request: Request) -> None:
    audit_log(
        AuditAction.CSRF_REJECTED,
        request=request,
        details={"path": request.url.path},
        success=False,
    )

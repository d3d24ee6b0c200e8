from typing import Annotated, TypedDict
import logging

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlists.core.access_grants import SessionGrantStore, grant_store
from giftlists.core.audit import audit_csrf_rejected
from giftlists.core.config import settings
from giftlists.core.security import decode_access_token, new_session_id, verify_csrf_token
from giftlists.db.session import get_db, get_session_factory
from giftlists.services.errors import Forbidden


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
logger = logging.getLogger("giftlists.auth")


class CookieOptions(TypedDict, total=False):
    samesite: str
    secure: bool


def cookie_options() -> CookieOptions:
    environment = (settings.environment or "local").lower()
    if environment == "local":
        return {"samesite": "lax", "secure": False}
    return {"samesite": "none", "secure": True}


def get_viewer_id(
    request: Request,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> int | None:
    """Identity supplied by the session provider: a user id, or None for guests.

    Invalid or expired tokens are treated as no identity.
    """
    token = access_token
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        return None

    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        logger.info("Auth token invalid path=%s", request.url.path)
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        logger.info("Auth token subject invalid path=%s", request.url.path)
        return None


ViewerIdDep = Annotated[int | None, Depends(get_viewer_id)]


def get_current_viewer_id(viewer_id: ViewerIdDep) -> int:
    if viewer_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return viewer_id


def get_session_id(request: Request, response: Response) -> str:
    """Opaque id of the viewer session; issued as an http-only cookie on first contact."""
    cookie_name = settings.session_cookie_name
    session_id = request.cookies.get(cookie_name)
    if session_id:
        return session_id
    session_id = new_session_id()
    response.set_cookie(
        cookie_name,
        session_id,
        httponly=True,
        max_age=settings.access_grant_ttl_seconds,
        path="/",
        **cookie_options(),
    )
    return session_id


SessionIdDep = Annotated[str, Depends(get_session_id)]


def get_grant_store() -> SessionGrantStore:
    return grant_store


GrantStoreDep = Annotated[SessionGrantStore, Depends(get_grant_store)]


def require_csrf(
    request: Request,
    session_id: SessionIdDep,
    x_csrf_token: str | None = Header(default=None, alias="X-CSRF-Token"),
) -> None:
    if not verify_csrf_token(x_csrf_token, session_id):
        audit_csrf_rejected(request)
        raise Forbidden("Invalid CSRF token")

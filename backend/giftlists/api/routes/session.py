import logging

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from giftlists.api.deps import GrantStoreDep, SessionIdDep, cookie_options, require_csrf
from giftlists.core.config import settings
from giftlists.core.security import create_csrf_token


logger = logging.getLogger("giftlists.session")

router = APIRouter(prefix="/session", tags=["session"])


class CsrfTokenResponse(BaseModel):
    csrf_token: str


@router.get("/csrf", response_model=CsrfTokenResponse)
async def issue_csrf_token(session_id: SessionIdDep) -> CsrfTokenResponse:
    """Anti-forgery token bound to the caller's session cookie."""
    return CsrfTokenResponse(csrf_token=create_csrf_token(session_id))


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_csrf)])
async def reset_session(response: Response, session_id: SessionIdDep, store: GrantStoreDep) -> None:
    """Forget every unlocked list and drop the session cookie."""
    await store.clear(session_id)
    response.delete_cookie(settings.session_cookie_name, path="/", **cookie_options())
    logger.info("Viewer session reset")

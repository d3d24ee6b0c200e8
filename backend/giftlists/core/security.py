from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from giftlists.core.config import settings

_dev_logger = logging.getLogger("giftlists.security")
_insecure_keys = {"CHANGE_ME", "secret", "jwt_secret", "changeme", ""}

if not settings.jwt_secret_key or settings.jwt_secret_key in _insecure_keys or len(settings.jwt_secret_key) < 32:
    env = getattr(settings, "environment", "local") or "local"
    if env.lower() == "local":
        settings.jwt_secret_key = secrets.token_urlsafe(64)
        _dev_logger.warning("JWT_SECRET_KEY was missing/insecure; generated ephemeral key for local dev")
    else:
        raise RuntimeError("JWT_SECRET_KEY must be set to a secure value (32+ chars) in production")


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_list_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_list_password(plain_password: str, password_hash: str | None) -> bool:
    """Check a viewer-supplied password against a list's bcrypt hash.

    A missing hash never verifies. The comparison is salted and constant-time
    (passlib/bcrypt); malformed hashes are treated as a mismatch.
    """
    if not password_hash:
        return False
    try:
        return pwd_context.verify(plain_password, password_hash)
    except (ValueError, TypeError):
        _dev_logger.warning("List password hash could not be parsed")
        return False


def _encode(payload: dict[str, Any]) -> str:
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token_raw(token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def create_access_token(subject: str, expires_delta_minutes: int | None = None) -> str:
    expire_minutes = expires_delta_minutes or settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    return _encode({"sub": subject, "exp": expire, "type": "access", "jti": str(uuid4())})


def decode_access_token(token: str) -> dict[str, Any] | None:
    payload = _decode_token_raw(token)
    if not payload or payload.get("type") != "access":
        return None
    return payload


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def create_csrf_token(session_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.csrf_token_expire_minutes)
    return _encode({"sid": session_id, "exp": expire, "type": "csrf", "nonce": secrets.token_hex(8)})


def verify_csrf_token(token: str | None, session_id: str | None) -> bool:
    if not token or not session_id:
        return False
    payload = _decode_token_raw(token)
    if not payload or payload.get("type") != "csrf":
        return False
    bound_session = payload.get("sid")
    if not isinstance(bound_session, str):
        return False
    return secrets.compare_digest(bound_session, session_id)

from fastapi.testclient import TestClient

from giftlists.api.deps import cookie_options
from giftlists.core.config import settings
from giftlists.main import app


def test_health_ok():
    client = TestClient(app)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json().get("status") == "ok"


def test_request_id_is_echoed():
    client = TestClient(app)
    res = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert res.headers["X-Request-Id"] == "req-123"
    assert res.headers["X-Content-Type-Options"] == "nosniff"


def test_session_cookie_flags_prod():
    prev_env = settings.environment
    settings.environment = "prod"
    try:
        client = TestClient(app, base_url="https://testserver")
        res = client.get("/session/csrf")
        set_cookie = res.headers.get("set-cookie", "")
        assert "sid=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Secure" in set_cookie
        assert "samesite=none" in set_cookie.lower()
    finally:
        settings.environment = prev_env


def test_local_cookie_options():
    prev_env = settings.environment
    settings.environment = "local"
    try:
        assert cookie_options() == {"samesite": "lax", "secure": False}
    finally:
        settings.environment = prev_env

"""
HTTP surface of reserve/unreserve: CSRF gate, payloads and error mapping.
"""
import pytest

from conftest import FailingRecorder, csrf_headers, login, new_csrf_for
from giftlists.api.routes.gifts import get_reservation_service
from giftlists.main import app
from giftlists.models.models import GiftStatus, ReservationStatus
from giftlists.services.reservations import ReservationService


@pytest.fixture
def gift(seed):
    owner_id = seed.user(name="Owner")
    list_id = seed.gift_list(owner_id)
    gift_id = seed.gift(list_id, title="Kettle")
    return owner_id, list_id, gift_id


class TestCsrfGate:
    """Mutations are refused without a token bound to the caller's session."""

    def test_reserve_without_token(self, test_client, seed, gift):
        _, _, gift_id = gift

        res = test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id, "reserver_name": "Anna"})

        assert res.status_code == 403
        body = res.json()
        assert body["success"] is False
        assert body["code"] == "forbidden"
        assert body["error"] == "Invalid CSRF token"
        assert seed.gift_status(gift_id) == GiftStatus.AVAILABLE.value

    def test_token_from_another_session(self, test_client, seed, gift):
        _, _, gift_id = gift
        test_client.get("/session/csrf")

        res = test_client.post(
            "/api/v1/gifts/reserve",
            json={"gift_id": gift_id, "reserver_name": "Anna"},
            headers={"X-CSRF-Token": new_csrf_for("someone-else")},
        )

        assert res.status_code == 403
        assert seed.reservations(gift_id) == []

    def test_garbage_token(self, test_client, seed, gift):
        _, _, gift_id = gift
        test_client.get("/session/csrf")

        res = test_client.post(
            "/api/v1/gifts/unreserve",
            json={"gift_id": gift_id},
            headers={"X-CSRF-Token": "not-a-token"},
        )

        assert res.status_code == 403

    def test_csrf_endpoint_issues_session_cookie(self, test_client):
        res = test_client.get("/session/csrf")

        assert res.status_code == 200
        assert res.json()["csrf_token"]
        assert "sid=" in res.headers.get("set-cookie", "")
        assert "HttpOnly" in res.headers.get("set-cookie", "")

    def test_token_is_reusable_within_session(self, test_client, seed, gift):
        owner_id, _, gift_id = gift
        headers = csrf_headers(test_client)
        login(test_client, owner_id)

        first = test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id}, headers=headers)
        second = test_client.post("/api/v1/gifts/unreserve", json={"gift_id": gift_id}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200


class TestReserveApi:
    def test_guest_reserves_with_name(self, test_client, seed, gift):
        owner_id, _, gift_id = gift
        headers = csrf_headers(test_client)

        res = test_client.post(
            "/api/v1/gifts/reserve",
            json={"gift_id": gift_id, "reserver_name": "  Anna  ", "reserver_email": "", "message": "See you"},
            headers=headers,
        )

        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["gift_id"] == gift_id
        assert body["status"] == "reserved"
        [reservation] = seed.reservations(gift_id)
        assert body["reservation_id"] == reservation.id
        assert reservation.name == "Anna"
        assert reservation.email is None
        assert reservation.user_id is None
        # Delivery ran after commit but mail is disabled in tests.
        [notification] = seed.notifications(owner_id)
        assert notification.delivered_at is None

    def test_authenticated_reserve_uses_account(self, test_client, seed, gift):
        _, _, gift_id = gift
        user_id = seed.user(name="Boris", email="boris@example.com")
        headers = csrf_headers(test_client)
        login(test_client, user_id)

        res = test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id}, headers=headers)

        assert res.status_code == 200
        [reservation] = seed.reservations(gift_id)
        assert reservation.user_id == user_id
        assert reservation.name == "Boris"
        assert reservation.email == "boris@example.com"

    def test_guest_without_name_is_bad_request(self, test_client, seed, gift):
        _, _, gift_id = gift
        headers = csrf_headers(test_client)

        res = test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id}, headers=headers)

        assert res.status_code == 400
        assert res.json()["code"] == "bad_request"
        assert res.json()["gift_id"] == gift_id

    def test_malformed_body_is_bad_request(self, test_client):
        headers = csrf_headers(test_client)

        res = test_client.post("/api/v1/gifts/reserve", json={"gift_id": "abc"}, headers=headers)

        assert res.status_code == 400
        body = res.json()
        assert body["success"] is False
        assert body["code"] == "bad_request"
        assert body["gift_id"] is None

    def test_invalid_email_is_bad_request(self, test_client, gift):
        _, _, gift_id = gift
        headers = csrf_headers(test_client)

        res = test_client.post(
            "/api/v1/gifts/reserve",
            json={"gift_id": gift_id, "reserver_name": "Anna", "reserver_email": "not-an-email"},
            headers=headers,
        )

        assert res.status_code == 400
        assert res.json()["gift_id"] == gift_id

    def test_missing_gift_is_not_found(self, test_client):
        headers = csrf_headers(test_client)

        res = test_client.post(
            "/api/v1/gifts/reserve",
            json={"gift_id": 4242, "reserver_name": "Anna"},
            headers=headers,
        )

        assert res.status_code == 404
        assert res.json() == {
            "success": False,
            "gift_id": 4242,
            "code": "not_found",
            "error": "Gift not found",
        }

    def test_second_reserve_conflicts(self, test_client, seed, gift):
        _, _, gift_id = gift
        headers = csrf_headers(test_client)
        payload = {"gift_id": gift_id, "reserver_name": "Anna"}

        assert test_client.post("/api/v1/gifts/reserve", json=payload, headers=headers).status_code == 200
        res = test_client.post("/api/v1/gifts/reserve", json=payload, headers=headers)

        assert res.status_code == 409
        assert res.json()["code"] == "conflict"
        assert res.json()["reason"] == "already_reserved"
        seed.assert_consistent(gift_id)

    def test_storage_failure_is_internal(self, test_client, seed, gift, session_factory):
        _, _, gift_id = gift
        app.dependency_overrides[get_reservation_service] = lambda: ReservationService(
            session_factory, events=FailingRecorder()
        )
        headers = csrf_headers(test_client)

        res = test_client.post(
            "/api/v1/gifts/reserve",
            json={"gift_id": gift_id, "reserver_name": "Anna"},
            headers=headers,
        )

        assert res.status_code == 500
        assert res.json()["code"] == "internal"
        assert seed.gift_status(gift_id) == GiftStatus.AVAILABLE.value
        assert seed.reservations(gift_id) == []


class TestUnreserveApi:
    def test_reserver_releases(self, test_client, seed, gift):
        _, _, gift_id = gift
        user_id = seed.user(name="Vera")
        headers = csrf_headers(test_client)
        login(test_client, user_id)
        test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id}, headers=headers)

        res = test_client.post(
            "/api/v1/gifts/unreserve",
            json={"gift_id": gift_id, "reason": "Bought something else"},
            headers=headers,
        )

        assert res.status_code == 200
        assert res.json() == {"success": True, "gift_id": gift_id, "status": "available"}
        seed.assert_consistent(gift_id)

    def test_stranger_is_forbidden(self, test_client, seed, gift):
        _, _, gift_id = gift
        reserver_id = seed.user(name="Reserver")
        stranger_id = seed.user(name="Stranger")
        headers = csrf_headers(test_client)
        login(test_client, reserver_id)
        test_client.post("/api/v1/gifts/reserve", json={"gift_id": gift_id}, headers=headers)

        login(test_client, stranger_id)
        res = test_client.post("/api/v1/gifts/unreserve", json={"gift_id": gift_id}, headers=headers)

        assert res.status_code == 403
        assert res.json()["code"] == "forbidden"
        assert seed.gift_status(gift_id) == GiftStatus.RESERVED.value
        [reservation] = seed.reservations(gift_id)
        assert reservation.status == ReservationStatus.ACTIVE.value

    def test_available_gift_conflicts(self, test_client, seed, gift):
        owner_id, _, gift_id = gift
        headers = csrf_headers(test_client)
        login(test_client, owner_id)

        res = test_client.post("/api/v1/gifts/unreserve", json={"gift_id": gift_id}, headers=headers)

        assert res.status_code == 409
        assert res.json()["reason"] == "not_reserved"

import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import ConflictError
from app.core.security import Role, caller_from_claims, create_access_token
from app.db.models import BookingStatus, WebhookEvent
from app.db.session import get_db
from app.main import app
from app.routes.dependencies import get_gateway, get_notifier

from conftest import WEBHOOK_SECRET, sign, webhook_body


@pytest.fixture
def client(session_factory, gateway, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(vendor=None, role=None):
    claims = {"sub": str(vendor.id)} if vendor is not None else {}
    if role:
        claims["role"] = role
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def booking_ref(client, factory, product, requester):
    factory.coupon()
    response = client.post(
        "/bookings",
        json={
            "product_ref": product.uuid,
            "start_date": "2030-01-20",
            "end_date": "2030-01-21",
            "coupon_code": "SAVE1000",
        },
        headers=auth(requester),
    )
    assert response.status_code == 201, response.text
    return response.json()["uuid"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requires_token(client):
    response = client.get("/bookings")
    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required"


def test_rejects_garbage_token(client):
    response = client.get("/bookings", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_quote(client, factory, product, requester):
    factory.coupon()
    response = client.post(
        "/bookings/quote",
        json={"product_ref": product.uuid, "start_date": "2030-01-20", "end_date": "2030-01-21",
              "coupon_code": "save1000"},
        headers=auth(requester),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["booking_type"] == "MULTI_DAY"
    assert float(body["total_amount"]) == 20000
    assert float(body["final_amount"]) == 19000


def test_create_booking(client, booking_ref, requester):
    response = client.get(f"/bookings/{booking_ref}", headers=auth(requester))
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "REQUESTED"
    assert body["coupon_code"] == "SAVE1000"
    assert float(body["final_amount"]) == 19000


def test_domain_error_body(client, booking_ref, product, factory):
    other = factory.vendor("Someone else")
    response = client.post(
        "/bookings",
        json={"product_ref": product.uuid, "start_date": "2030-01-21", "end_date": "2030-01-22"},
        headers=auth(other),
    )
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "DATES_UNAVAILABLE"
    assert body["error"]
    assert body["details"]["next_available_date"] == "2030-01-22"


def test_request_validation_error(client, requester):
    response = client.post("/bookings", json={"start_date": "tomorrow"}, headers=auth(requester))
    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


def test_availability(client, booking_ref, product):
    response = client.get(
        "/bookings/availability",
        params={"product_ref": product.uuid, "start_date": "2030-01-21", "end_date": "2030-01-23"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["next_available_date"] == "2030-01-22"


def test_list_bookings_by_role(client, booking_ref, provider, requester):
    response = client.get("/bookings", params={"role": "provider"}, headers=auth(provider))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["uuid"] == booking_ref

    response = client.get("/bookings", params={"role": "provider"}, headers=auth(requester))
    assert response.json()["total"] == 0


def test_payment_flow(client, booking_ref, provider, requester, db):
    response = client.post(
        f"/bookings/{booking_ref}/decision", json={"decision": "APPROVE"}, headers=auth(provider)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PAYMENT_PENDING"
    assert float(response.json()["advance_amount"]) == 5700

    response = client.post(f"/payments/{booking_ref}/pay", headers=auth(requester))
    assert response.status_code == 200
    handle = response.json()
    assert handle["amount"] == 570000
    assert handle["key_id"] == "rzp_test_key"

    order_id = handle["order_id"]
    response = client.post(
        "/payments/verify",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_route1",
            "razorpay_signature": sign(f"{order_id}|pay_route1"),
        },
        headers=auth(requester),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["booking_status"] == BookingStatus.CONFIRMED.value
    assert body["payment_status"] == "PAID"
    assert body["changed"] is True

    # a late webhook for the same capture changes nothing
    raw = webhook_body("payment.captured", order_id, 570000, payment_id="pay_route1")
    response = client.post(
        "/payments/webhook",
        content=raw,
        headers={"X-Razorpay-Signature": sign(raw, WEBHOOK_SECRET), "X-Razorpay-Event-Id": "evt_route"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PROCESSED"
    assert db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_route").count() == 1


def test_verify_bad_signature(client, booking_ref, provider, requester):
    client.post(f"/bookings/{booking_ref}/decision", json={"decision": "APPROVE"}, headers=auth(provider))
    order_id = client.post(f"/payments/{booking_ref}/pay", headers=auth(requester)).json()["order_id"]

    response = client.post(
        "/payments/verify",
        json={"razorpay_order_id": order_id, "razorpay_payment_id": "pay_x", "razorpay_signature": "00"},
        headers=auth(requester),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "SIGNATURE_MISMATCH"


def test_webhook_bad_signature(client):
    raw = webhook_body("payment.captured", "order_x", 100)
    response = client.post("/payments/webhook", content=raw, headers={"X-Razorpay-Signature": "bogus"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_calendar_routes(client, provider):
    response = client.post(
        "/calendar/blocks",
        json={"start_date": "2030-02-01", "end_date": "2030-02-02", "reason": "Holiday"},
        headers=auth(provider),
    )
    assert response.status_code == 201
    block_ref = response.json()["uuid"]

    assert len(client.get("/calendar/blocks", headers=auth(provider)).json()) == 1
    assert client.delete(f"/calendar/blocks/{block_ref}", headers=auth(provider)).status_code == 204
    assert client.get("/calendar/blocks", headers=auth(provider)).json() == []


def test_coupon_validation(client, factory, product, requester):
    factory.coupon()
    response = client.post(
        "/coupons/validate",
        json={"code": "save1000", "product_ref": product.uuid, "start_date": "2030-01-20",
              "end_date": "2030-01-21"},
        headers=auth(requester),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert float(body["discount_amount"]) == 1000


def test_admin_routes_need_admin(client, requester):
    response = client.post("/admin/api/webhooks/evt/replay", headers=auth(requester))
    assert response.status_code == 403


def test_admin_replay_unknown_event(client):
    response = client.post("/admin/api/webhooks/evt/replay", headers=auth(role="admin"))
    assert response.status_code == 404


def test_caller_from_claims():
    assert caller_from_claims({"sub": "7"}).vendor_id == 7
    assert caller_from_claims({"role": "admin"}).role == Role.ADMIN
    assert caller_from_claims({}) is None
    assert caller_from_claims({"sub": "abc"}) is None
    assert caller_from_claims({"sub": "1", "role": "root"}) is None


def test_domain_exception_as_http_exception():
    http_exc = ConflictError("Taken", code="DATES_UNAVAILABLE").to_http_exception()
    assert http_exc.status_code == 409
    assert http_exc.detail == {"error": "Taken", "code": "DATES_UNAVAILABLE", "details": {}}

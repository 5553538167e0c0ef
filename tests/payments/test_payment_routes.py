import json

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_checkout_service, get_payment_settings
from api.utils.network import is_ip_allowed
from api.utils.rate_limit import RateLimiter, create_order_limiter
from application.services.checkout_service import CheckoutService
from main import app

from fakes import KEY_SECRET, WEBHOOK_SECRET, FakeGateway, InMemoryStore, sign


RAZORPAY_IP = "3.6.127.10"
VIDEO = "https://youtu.be/dQw4w9WgXcQ"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def client(store, settings_factory):
    settings = settings_factory()
    gateway = FakeGateway()
    app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(
        gateway=gateway, uow_factory=store.uow_factory, settings=settings
    )
    # fresh counters per test
    app.dependency_overrides[create_order_limiter] = RateLimiter("5 per 15 minutes", key_prefix="create_order")
    app.dependency_overrides[get_payment_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _user(user_id=7, role="client"):
    return {"X-User-Id": str(user_id), "X-User-Role": role, "X-User-Email": f"user{user_id}@example.com"}


def _create(client, user_id=7):
    resp = client.post(
        "/api/v1/payments/create-order",
        json={"video_url": VIDEO, "plan": {"name": "Starter", "price": 1000, "quantity": "5000"}},
        headers=_user(user_id),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _post_webhook(client, event, ip=RAZORPAY_IP, signature=None, event_id="evt_1", **payload):
    body = json.dumps({"event": event, "payload": payload}).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Razorpay-Signature": signature or sign(WEBHOOK_SECRET, body),
        "X-Razorpay-Event-Id": event_id,
        "X-Forwarded-For": ip,
    }
    return client.post("/api/v1/payments/webhook", content=body, headers=headers)


def test_routes_require_identity(client):
    resp = client.post("/api/v1/payments/create-order", json={"video_url": VIDEO, "plan": {"name": "x", "price": 1}})
    assert resp.status_code == 401
    assert resp.json()["code"] == 30001


def test_create_and_verify_checkout(client, store):
    data = _create(client)
    assert data["key_id"] == "rzp_fake"
    assert data["amount_minor"] == 118000

    order_id = data["razorpay_order_id"]
    resp = client.post(
        "/api/v1/payments/verify",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign(KEY_SECRET, f"{order_id}|pay_1".encode()),
        },
        headers=_user(),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["status"] == "success"


def test_verify_invalid_signature_is_400(client):
    order_id = _create(client)["razorpay_order_id"]
    resp = client.post(
        "/api/v1/payments/verify",
        json={"razorpay_order_id": order_id, "razorpay_payment_id": "pay_1", "razorpay_signature": "deadbeef"},
        headers=_user(),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "PaymentVerificationFailed"


def test_verify_other_users_order_is_403(client):
    order_id = _create(client)["razorpay_order_id"]
    resp = client.post(
        "/api/v1/payments/verify",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign(KEY_SECRET, f"{order_id}|pay_1".encode()),
        },
        headers=_user(99),
    )
    assert resp.status_code == 403


def test_create_order_is_rate_limited_per_ip(client):
    for _ in range(5):
        _create(client)

    resp = client.post(
        "/api/v1/payments/create-order",
        json={"video_url": VIDEO, "plan": {"name": "Starter", "price": 1000}},
        headers=_user(),
    )
    assert resp.status_code == 429
    body = resp.json()
    assert body["code"] == 50001
    assert body["error"]["type"] == "RateLimit"
    assert int(resp.headers["Retry-After"]) >= 1

    # another client address has its own window
    other = client.post(
        "/api/v1/payments/create-order",
        json={"video_url": VIDEO, "plan": {"name": "Starter", "price": 1000}},
        headers={**_user(), "X-Forwarded-For": "198.51.100.7"},
    )
    assert other.status_code == 200


def test_invalid_video_url_is_400(client):
    resp = client.post(
        "/api/v1/payments/create-order",
        json={"video_url": "https://example.com/v", "plan": {"name": "Starter", "price": 10}},
        headers=_user(),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["field"] == "video_url"


def test_webhook_from_unknown_ip_is_rejected(client):
    resp = _post_webhook(client, "payment.captured", ip="203.0.113.5", payment={"entity": {}})
    assert resp.status_code == 403


def test_webhook_bad_signature_is_400(client):
    resp = _post_webhook(client, "payment.captured", signature="0" * 64, payment={"entity": {}})
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "WebhookSignatureInvalid"


def test_webhook_captures_and_dedupes(client, store):
    order_id = _create(client)["razorpay_order_id"]
    entity = {"id": "pay_5", "order_id": order_id, "method": "upi"}

    first = _post_webhook(client, "payment.captured", payment={"entity": entity})
    second = _post_webhook(client, "payment.captured", payment={"entity": entity})

    assert first.status_code == 200
    assert first.json()["data"]["handled"] is True
    assert second.status_code == 200
    assert second.json()["data"]["duplicate"] is True
    assert store.payments[1].status.value == "captured"


def test_webhook_ip_check_can_be_skipped(client, settings_factory):
    settings = settings_factory()
    settings.webhook.skip_ip_check = True
    app.dependency_overrides[get_payment_settings] = lambda: settings
    resp = _post_webhook(client, "order.paid", ip="203.0.113.5", order={"entity": {}})
    assert resp.status_code == 200
    assert resp.json()["data"]["handled"] is False


def test_history_scoped_to_caller_unless_admin(client):
    _create(client, user_id=7)
    _create(client, user_id=8)

    mine = client.get("/api/v1/payments/history", headers=_user(7)).json()["data"]
    assert mine["results"] == 1

    everything = client.get("/api/v1/payments/history", headers=_user(1, "admin")).json()["data"]
    assert everything["results"] == 2

    filtered = client.get("/api/v1/payments/history?user_id=8", headers=_user(1, "admin")).json()["data"]
    assert [p["user_id"] for p in filtered["payments"]] == [8]


def test_refund_is_admin_only(client):
    order_ref = _create(client)["order_ref"]
    resp = client.post("/api/v1/payments/refund", json={"order_ref": order_ref}, headers=_user(7))
    assert resp.status_code == 403

    # pending payment cannot be refunded
    resp = client.post("/api/v1/payments/refund", json={"order_ref": order_ref}, headers=_user(1, "admin"))
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "PaymentNotRefundable"


def test_refund_rejects_non_positive_amount(client):
    resp = client.post(
        "/api/v1/payments/refund",
        json={"order_ref": "ORD-1", "amount": 0},
        headers=_user(1, "admin"),
    )
    assert resp.status_code == 422


def test_public_key_and_reconcile(client):
    assert client.get("/api/v1/payments/key").json()["data"] == {"key_id": "rzp_fake"}

    order_ref = _create(client)["order_ref"]
    resp = client.post(f"/api/v1/payments/{order_ref}/reconcile", headers=_user(1, "admin"))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "pending"

    resp = client.post("/api/v1/payments/ORD-missing/reconcile", headers=_user(1, "admin"))
    assert resp.status_code == 404


def test_provider_lookup(client):
    resp = client.get("/api/v1/payments/provider/pay_1", headers=_user(1, "admin"))
    assert resp.status_code == 200
    assert resp.json()["data"]["payment"]["id"] == "pay_1"


@pytest.mark.parametrize(
    "ip, allowlist, expected",
    [
        ("3.6.127.10", ["3.6.127.0/25", "3.7.171.128/25"], True),
        ("3.7.171.200", ["3.6.127.0/25", "3.7.171.128/25"], True),
        ("3.6.127.200", ["3.6.127.0/25"], False),
        ("10.0.0.1", ["10.0.0.1"], True),
        ("10.0.0.1", ["garbage", "10.0.0.0/8"], True),
        ("not-an-ip", ["3.6.127.0/25"], False),
        (None, ["3.6.127.0/25"], False),
        ("203.0.113.5", [], True),
        ("203.0.113.5", None, True),
    ],
)
def test_is_ip_allowed(ip, allowlist, expected):
    assert is_ip_allowed(ip, allowlist) is expected

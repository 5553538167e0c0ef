import json
from decimal import Decimal

import pytest

from application.dtos.payments import CreateCheckout, PaymentVerificationRequest
from application.services.checkout_service import CheckoutService
from domain.common.exceptions import (
    DomainValidationException,
    InvalidVideoUrlException,
    PaymentAccessDeniedException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    PaymentVerificationFailedException,
    WebhookSignatureInvalidException,
)
from domain.payment.entity import PaymentStatus, RefundStatus
from infrastructure.external.payments.exceptions import MissingParameters, PaymentProviderError

from fakes import KEY_SECRET, WEBHOOK_SECRET, FakeGateway, InMemoryStore, sign


VIDEO = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(gateway, store, payment_settings):
    return CheckoutService(gateway=gateway, uow_factory=store.uow_factory, settings=payment_settings)


def _checkout(price="1000"):
    return CreateCheckout(
        video_url=VIDEO,
        plan={"name": "Starter", "price": price, "quantity": "5,000 views", "pricing_id": 3},
        channel_name="My Channel",
    )


def _verification(order_id="order_1", payment_id="pay_1", signature=None):
    sig = signature if signature is not None else sign(KEY_SECRET, f"{order_id}|{payment_id}".encode())
    return PaymentVerificationRequest(order_id=order_id, payment_id=payment_id, signature=sig)


def _webhook(event, **payload):
    body = json.dumps({"entity": "event", "event": event, "payload": payload, "created_at": 1700000000}).encode()
    return body, sign(WEBHOOK_SECRET, body)


async def _paid(service, user_id=7):
    session = await service.create_checkout(user_id, _checkout())
    await service.verify_checkout(user_id, _verification(session.razorpay_order_id))
    return session


@pytest.mark.asyncio
async def test_create_checkout_persists_pending_payment(service, gateway, store):
    session = await service.create_checkout(7, _checkout())

    assert session.razorpay_order_id == "order_1"
    assert session.key_id == "rzp_fake"
    assert session.amount == Decimal("1180.00")
    assert session.gst_amount == Decimal("180.00")
    assert session.amount_minor == 118000
    assert session.video_id == "dQw4w9WgXcQ"

    order = gateway.orders[0]
    assert order["receipt"] == session.order_ref
    assert order["notes"] == {"order_ref": session.order_ref, "user_id": "7", "plan": "Starter"}

    [payment] = store.payments.values()
    assert payment.status == PaymentStatus.PENDING
    assert payment.base_amount == Decimal("1000.00")
    assert payment.metadata["target_quantity"] == 5000
    assert payment.metadata["video_id"] == "dQw4w9WgXcQ"


@pytest.mark.asyncio
async def test_create_checkout_rejects_non_youtube_url(service, gateway):
    req = _checkout()
    req.video_url = "https://vimeo.com/1"
    with pytest.raises(InvalidVideoUrlException):
        await service.create_checkout(7, req)
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_verify_checkout_marks_success(service, gateway, store):
    gateway.payment_details["pay_1"] = {"id": "pay_1", "method": "card", "status": "captured"}
    session = await service.create_checkout(7, _checkout())

    result = await service.verify_checkout(7, _verification(session.razorpay_order_id))

    assert result.status == "success"
    assert result.payment_id == "pay_1"
    assert result.invoice_number.startswith("INV-")
    payment = store.payments[1]
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.payment_mode == "card"
    assert payment.razorpay_signature


@pytest.mark.asyncio
async def test_verify_checkout_is_idempotent(service, store):
    session = await service.create_checkout(7, _checkout())
    first = await service.verify_checkout(7, _verification(session.razorpay_order_id))
    second = await service.verify_checkout(7, _verification(session.razorpay_order_id))
    assert first.invoice_number == second.invoice_number


@pytest.mark.asyncio
async def test_verify_checkout_survives_details_fetch_failure(service, gateway, store):
    gateway.fail_fetch_payment = True
    session = await service.create_checkout(7, _checkout())
    result = await service.verify_checkout(7, _verification(session.razorpay_order_id))
    assert result.status == "success"
    assert store.payments[1].payment_mode is None


@pytest.mark.asyncio
async def test_invalid_signature_fails_payment(service, store):
    session = await service.create_checkout(7, _checkout())
    with pytest.raises(PaymentVerificationFailedException):
        await service.verify_checkout(7, _verification(session.razorpay_order_id, signature="f" * 64))

    payment = store.payments[1]
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_code == "INVALID_SIGNATURE"
    assert payment.invoice_number is None


@pytest.mark.asyncio
async def test_verify_checkout_checks_owner_and_existence(service):
    session = await service.create_checkout(7, _checkout())
    with pytest.raises(PaymentAccessDeniedException):
        await service.verify_checkout(8, _verification(session.razorpay_order_id))
    with pytest.raises(PaymentNotFoundException):
        await service.verify_checkout(7, _verification("order_unknown"))
    with pytest.raises(MissingParameters):
        await service.verify_checkout(7, PaymentVerificationRequest(order_id="order_1", payment_id="", signature="x"))


@pytest.mark.asyncio
async def test_webhook_requires_valid_signature(service, store):
    body, _ = _webhook("payment.captured")
    with pytest.raises(WebhookSignatureInvalidException):
        await service.handle_webhook(body, "bad", "evt_1")
    assert store.events == {}


@pytest.mark.asyncio
async def test_webhook_authorized_then_captured(service, store):
    session = await service.create_checkout(7, _checkout())
    entity = {"id": "pay_9", "order_id": session.razorpay_order_id, "method": "netbanking"}

    body, sig = _webhook("payment.authorized", payment={"entity": entity})
    result = await service.handle_webhook(body, sig, "evt_1")
    assert result.handled is True
    assert store.payments[1].status == PaymentStatus.AUTHORIZED
    assert store.payments[1].razorpay_payment_id == "pay_9"

    body, sig = _webhook("payment.captured", payment={"entity": entity})
    result = await service.handle_webhook(body, sig, "evt_2")
    assert result.handled is True
    assert store.payments[1].status == PaymentStatus.CAPTURED
    assert store.payments[1].payment_mode == "netbanking"


@pytest.mark.asyncio
async def test_duplicate_webhook_event_is_ignored(service, store):
    session = await service.create_checkout(7, _checkout())
    body, sig = _webhook("payment.failed", payment={"entity": {
        "id": "pay_1", "order_id": session.razorpay_order_id,
        "error_code": "BAD_REQUEST_ERROR", "error_description": "Payment was declined",
    }})

    first = await service.handle_webhook(body, sig, "evt_1")
    second = await service.handle_webhook(body, sig, "evt_1")

    assert first.handled is True and first.duplicate is False
    assert second.duplicate is True
    payment = store.payments[1]
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "Payment was declined"
    assert payment.failure_code == "BAD_REQUEST_ERROR"


@pytest.mark.asyncio
async def test_out_of_order_webhook_is_acknowledged(service, store):
    session = await _paid(service)
    body, sig = _webhook("payment.failed", payment={"entity": {"id": "pay_1", "order_id": session.razorpay_order_id}})
    result = await service.handle_webhook(body, sig, "evt_late")
    assert result.handled is False
    assert store.payments[1].status == PaymentStatus.SUCCESS
    # still recorded so redeliveries are short-circuited
    assert "evt_late" in store.events


@pytest.mark.asyncio
async def test_failed_attempt_then_successful_retry(service, store):
    session = await service.create_checkout(7, _checkout())
    order_id = session.razorpay_order_id

    body, sig = _webhook("payment.failed", payment={"entity": {
        "id": "pay_A", "order_id": order_id,
        "error_code": "BAD_REQUEST_ERROR", "error_description": "Payment was declined",
    }})
    assert (await service.handle_webhook(body, sig, "evt_fail")).handled is True
    assert store.payments[1].status == PaymentStatus.FAILED

    result = await service.verify_checkout(7, _verification(order_id, "pay_B"))
    assert result.status == "success"
    assert result.payment_id == "pay_B"

    body, sig = _webhook("payment.captured", payment={"entity": {"id": "pay_B", "order_id": order_id, "method": "upi"}})
    assert (await service.handle_webhook(body, sig, "evt_capture")).handled is True

    payment = store.payments[1]
    assert payment.status == PaymentStatus.CAPTURED
    assert payment.razorpay_payment_id == "pay_B"
    assert payment.failure_reason is None
    assert payment.failure_code is None


@pytest.mark.asyncio
async def test_webhook_without_event_name_is_rejected(service, store):
    body = b'{"payload": {}}'
    with pytest.raises(DomainValidationException):
        await service.handle_webhook(body, sign(WEBHOOK_SECRET, body), "evt_1")
    assert store.events == {}


@pytest.mark.asyncio
async def test_webhook_with_non_object_entity_is_ignored(service, store):
    body = b'{"event": "payment.captured", "payload": {"payment": []}}'
    result = await service.handle_webhook(body, sign(WEBHOOK_SECRET, body), "evt_1")
    assert result.handled is False
    assert "evt_1" in store.events


@pytest.mark.asyncio
async def test_unknown_payment_and_unhandled_event(service):
    body, sig = _webhook("payment.captured", payment={"entity": {"id": "pay_x", "order_id": "order_x"}})
    assert (await service.handle_webhook(body, sig, "evt_1")).handled is False

    body, sig = _webhook("order.paid", order={"entity": {"id": "order_x"}})
    assert (await service.handle_webhook(body, sig, "evt_2")).handled is False


@pytest.mark.asyncio
async def test_refund_then_processed_webhook(service, gateway, store):
    session = await _paid(service)

    result = await service.refund(session.order_ref, amount=Decimal("300"), reason="customer request", processed_by="admin@example.com")

    assert result.refund_id == "rfnd_1"
    assert result.amount == Decimal("300.00")
    assert gateway.refunds[0]["payment_id"] == "pay_1"
    assert gateway.refunds[0]["notes"]["processed_by"] == "admin@example.com"
    payment = store.payments[1]
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refund_status == RefundStatus.PENDING

    body, sig = _webhook("refund.processed", refund={"entity": {"id": "rfnd_1", "payment_id": "pay_1", "amount": 30000}})
    webhook = await service.handle_webhook(body, sig, "evt_r1")
    assert webhook.handled is True
    assert store.payments[1].refund_status == RefundStatus.PROCESSED


@pytest.mark.asyncio
async def test_full_refund_uses_payment_amount_when_provider_omits_it(service, gateway, store):
    session = await _paid(service)
    result = await service.refund(session.order_ref)
    assert gateway.refunds[0]["amount"] is None
    assert result.amount == Decimal("1180.00")


@pytest.mark.asyncio
async def test_refund_guards(service, gateway, store):
    with pytest.raises(PaymentNotFoundException):
        await service.refund("ORD-missing")

    session = await service.create_checkout(7, _checkout())
    with pytest.raises(PaymentNotRefundableException):
        await service.refund(session.order_ref)
    assert gateway.refunds == []


@pytest.mark.asyncio
async def test_refund_provider_rejection_leaves_payment_untouched(service, gateway, store):
    session = await _paid(service)
    gateway.refund_error = PaymentProviderError("Refund failed: already refunded", provider="razorpay")
    with pytest.raises(PaymentProviderError):
        await service.refund(session.order_ref)
    assert store.payments[1].status == PaymentStatus.SUCCESS


@pytest.mark.asyncio
async def test_payment_history_filters(service):
    await service.create_checkout(7, _checkout())
    await service.create_checkout(8, _checkout("500"))
    await _paid(service, user_id=7)

    mine = await service.payment_history(user_id=7)
    assert {p.user_id for p in mine} == {7}
    assert len(mine) == 2

    succeeded = await service.payment_history(status=PaymentStatus.SUCCESS)
    assert [p.status for p in succeeded] == ["success"]

    assert len(await service.payment_history(limit=1)) == 1


@pytest.mark.asyncio
async def test_reconcile_captures_paid_order(service, gateway, store):
    session = await service.create_checkout(7, _checkout())
    order_id = session.razorpay_order_id
    gateway.order_details[order_id] = {"id": order_id, "status": "paid"}
    gateway.order_payments[order_id] = [
        {"id": "pay_A", "order_id": order_id, "status": "failed", "method": "card"},
        {"id": "pay_B", "order_id": order_id, "status": "captured", "method": "upi"},
    ]

    view = await service.reconcile(session.order_ref)

    assert view.status == "captured"
    payment = store.payments[1]
    assert payment.provider_response["order"]["status"] == "paid"
    assert payment.razorpay_payment_id == "pay_B"
    assert payment.payment_mode == "upi"

    refund = await service.refund(session.order_ref)
    assert refund.refund_id == "rfnd_1"
    assert gateway.refunds[0]["payment_id"] == "pay_B"


@pytest.mark.asyncio
async def test_reconcile_paid_order_without_captured_attempt(service, gateway, store):
    session = await service.create_checkout(7, _checkout())
    gateway.order_details[session.razorpay_order_id] = {"id": session.razorpay_order_id, "status": "paid"}

    view = await service.reconcile(session.order_ref)

    assert view.status == "captured"
    # razorpay order id is not mistaken for a payment id
    assert store.payments[1].razorpay_payment_id is None


@pytest.mark.asyncio
async def test_reconcile_leaves_unpaid_order(service, store):
    session = await service.create_checkout(7, _checkout())
    view = await service.reconcile(session.order_ref)
    assert view.status == "pending"

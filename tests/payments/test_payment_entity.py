from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import Payment, PaymentStatus, RefundStatus


def _payment(**kwargs) -> Payment:
    data = dict(id=1, order_ref="ORD-1", user_id=7, amount=Decimal("1180.00"), razorpay_order_id="order_1")
    data.update(kwargs)
    return Payment(**data)


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
def test_amount_must_be_positive(amount):
    with pytest.raises(DomainValidationException):
        _payment(amount=amount)


def test_currency_must_be_iso_code():
    with pytest.raises(DomainValidationException):
        _payment(currency="RUPEE")


def test_verified_payment_succeeds_once():
    p = _payment()
    assert p.mark_succeeded(payment_id="pay_1", signature="sig", invoice_number="INV-1", payment_mode="upi")
    assert p.status == PaymentStatus.SUCCESS
    assert p.razorpay_payment_id == "pay_1"
    assert p.captured_at is not None
    # replay is a no-op
    assert p.mark_succeeded(payment_id="pay_1", signature="sig", invoice_number="INV-2") is False
    assert p.invoice_number == "INV-1"


def test_webhook_lifecycle_authorized_then_captured():
    p = _payment()
    assert p.mark_authorized("pay_1", {"id": "pay_1"})
    assert p.status == PaymentStatus.AUTHORIZED
    assert p.mark_captured({"id": "pay_1", "method": "card"})
    assert p.status == PaymentStatus.CAPTURED
    assert p.payment_mode == "card"
    assert p.mark_captured({"id": "pay_1"}) is False


def test_captured_after_success_is_allowed():
    p = _payment()
    p.mark_succeeded(payment_id="pay_1", signature="sig", invoice_number="INV-1")
    assert p.mark_captured({"id": "pay_1"})
    assert p.status == PaymentStatus.CAPTURED
    assert p.can_refund()


def test_failed_attempt_can_be_retried_on_same_order():
    p = _payment()
    assert p.mark_failed("Card declined", "BAD_REQUEST_ERROR", {"id": "pay_A"})
    assert p.failure_code == "BAD_REQUEST_ERROR"

    assert p.mark_captured({"id": "pay_B", "method": "upi"})
    assert p.status == PaymentStatus.CAPTURED
    assert p.razorpay_payment_id == "pay_B"
    assert p.payment_mode == "upi"
    assert p.failure_reason is None
    assert p.failure_code is None
    assert p.can_refund()


def test_failed_attempt_can_be_authorized_or_verified():
    authorized = _payment()
    authorized.mark_failed("declined")
    assert authorized.mark_authorized("pay_B")
    assert authorized.failure_reason is None

    verified = _payment()
    verified.mark_failed("Payment signature verification failed", "INVALID_SIGNATURE")
    assert verified.mark_succeeded(payment_id="pay_B", signature="sig", invoice_number="INV-1")
    assert verified.status == PaymentStatus.SUCCESS
    assert verified.failure_code is None


def test_success_cannot_fail():
    p = _payment()
    p.mark_succeeded(payment_id="pay_1", signature="sig", invoice_number="INV-1")
    with pytest.raises(DomainValidationException):
        p.mark_failed("late failure")


def test_refund_requires_settled_payment():
    p = _payment()
    assert p.can_refund() is False
    with pytest.raises(DomainValidationException):
        p.mark_refunded(refund_id="rfnd_1", amount=Decimal("10"), status=RefundStatus.PENDING)


def test_refund_then_processed_webhook_advances_status():
    p = _payment()
    p.mark_succeeded(payment_id="pay_1", signature="sig", invoice_number="INV-1")
    assert p.mark_refunded(refund_id="rfnd_1", amount=Decimal("300"), status=RefundStatus.PENDING, refund={"id": "rfnd_1"})
    assert p.status == PaymentStatus.REFUNDED
    assert p.refund_amount == Decimal("300")
    assert p.provider_response["refund"] == {"id": "rfnd_1"}

    assert p.mark_refunded(refund_id="rfnd_1", amount=Decimal("300"), status=RefundStatus.PROCESSED)
    assert p.refund_status == RefundStatus.PROCESSED
    # same event again
    assert p.mark_refunded(refund_id="rfnd_1", amount=Decimal("300"), status=RefundStatus.PROCESSED) is False

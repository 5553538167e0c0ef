"""
Checkout application service.

Orchestrates the storefront flow around the payment gateway port: create a
provider order for a plan, confirm the client callback by signature, apply
webhook events to the local payment record and issue refunds. Provider calls
happen outside database transactions; every state change goes through the
Payment aggregate.
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import ValidationError

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    PaymentVerificationRequest,
    PaymentView,
    RefundResult,
    VerificationResult,
    WebhookEvent,
    WebhookResult,
)
from application.ports.payment_gateway import PaymentGateway
from application.utils import billing, youtube
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import (
    DomainValidationException,
    InvalidVideoUrlException,
    PaymentAccessDeniedException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    PaymentVerificationFailedException,
    WebhookSignatureInvalidException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus, RefundStatus
from infrastructure.external.payments.exceptions import MissingParameters, PaymentProviderError


logger = get_logger(__name__)


def _from_minor(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return billing.round_money(Decimal(int(value)) / Decimal(100))


class CheckoutService:
    """支付编排服务 - 本地支付记录 + 渠道调用"""

    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        settings: Optional[PaymentSettings] = None,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self._settings = settings or payment_settings

    # 下单

    async def create_checkout(self, user_id: Optional[int], req: CreateCheckout) -> CheckoutSession:
        if not youtube.validate_youtube_url(req.video_url):
            raise InvalidVideoUrlException(req.video_url)

        gst = billing.calculate_gst(req.plan.price, self._settings.gst_rate)
        video_id = youtube.extract_youtube_video_id(req.video_url)
        order_ref = billing.generate_order_reference()
        currency = self._settings.currency

        order = await self.gateway.create_order(
            gst.total_amount,
            currency=currency,
            receipt=order_ref,
            notes={
                "order_ref": order_ref,
                "user_id": "" if user_id is None else str(user_id),
                "plan": req.plan.name,
            },
        )

        payment = Payment(
            id=None,
            order_ref=order_ref,
            user_id=user_id,
            amount=gst.total_amount,
            currency=currency,
            razorpay_order_id=order["id"],
            base_amount=gst.base_amount,
            gst_amount=gst.gst_amount,
            gst_rate=gst.gst_rate,
            metadata={
                "plan_name": req.plan.name,
                "quantity": req.plan.quantity,
                "target_quantity": req.plan.target_quantity,
                "pricing_id": req.plan.pricing_id,
                "video_url": req.video_url,
                "video_id": video_id,
                "channel_name": req.channel_name or "",
                "channel_url": req.channel_url or "",
            },
            provider_response=order,
        )
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.create(payment)

        logger.info(
            "checkout_created",
            order_ref=order_ref,
            razorpay_order_id=order["id"],
            user_id=user_id,
            amount=str(gst.total_amount),
        )
        return CheckoutSession(
            order_ref=order_ref,
            razorpay_order_id=order["id"],
            key_id=self.gateway.get_key_id(),
            amount=gst.total_amount,
            amount_minor=int(order.get("amount") or 0),
            base_amount=gst.base_amount,
            gst_amount=gst.gst_amount,
            gst_rate=gst.gst_rate,
            currency=currency,
            video_id=video_id,
        )

    # 客户端回调校验

    async def verify_checkout(
        self, user_id: Optional[int], verification: PaymentVerificationRequest
    ) -> VerificationResult:
        missing = verification.missing_fields()
        if missing:
            raise MissingParameters(missing)

        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_razorpay_order_id(verification.order_id)
        if payment is None:
            raise PaymentNotFoundException(verification.order_id)
        if payment.user_id != user_id:
            raise PaymentAccessDeniedException(payment.order_ref)

        if not self.gateway.verify_payment_signature(verification):
            if payment.status in (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED):
                payment.mark_failed("Payment signature verification failed", "INVALID_SIGNATURE")
                async with self._uow_factory() as uow:
                    await uow.payment_repository.update(payment)
            logger.warning("checkout_verification_failed", order_ref=payment.order_ref)
            raise PaymentVerificationFailedException(payment.order_ref)

        details: Optional[dict[str, Any]] = None
        try:
            details = await self.gateway.fetch_payment_details(verification.payment_id)
        except PaymentProviderError as exc:
            logger.warning(
                "checkout_payment_details_unavailable",
                order_ref=payment.order_ref,
                payment_id=verification.payment_id,
                error=exc.message,
            )

        changed = payment.mark_succeeded(
            payment_id=verification.payment_id,
            signature=verification.signature,
            invoice_number=billing.generate_invoice_number(),
            payment_mode=(details or {}).get("method"),
            response=details,
        )
        if changed:
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.update(payment)

        logger.info(
            "checkout_verified",
            order_ref=payment.order_ref,
            payment_id=payment.razorpay_payment_id,
            invoice_number=payment.invoice_number,
            replay=not changed,
        )
        return VerificationResult(
            order_ref=payment.order_ref,
            payment_id=payment.razorpay_payment_id or verification.payment_id,
            invoice_number=payment.invoice_number,
            amount=payment.amount,
            status=payment.status.value,
        )

    # Webhook

    async def handle_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
        event_id: Optional[str] = None,
    ) -> WebhookResult:
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("webhook_signature_invalid", event_id=event_id)
            raise WebhookSignatureInvalidException()

        try:
            body = json.loads(raw_body)
        except ValueError as exc:
            raise DomainValidationException("Webhook body is not valid JSON", field="body") from exc
        if not isinstance(body, dict):
            raise DomainValidationException("Webhook body must be a JSON object", field="body")
        try:
            event = WebhookEvent.model_validate({**body, "id": event_id or body.get("id")})
        except ValidationError as exc:
            raise DomainValidationException("Webhook body is not a valid event", field="body") from exc

        async with self._uow_factory() as uow:
            if event.id and not await uow.webhook_event_repository.record(event.id, event.event):
                logger.info("webhook_duplicate_ignored", event_id=event.id, event_type=event.event)
                return WebhookResult(event_id=event.id, event=event.event, handled=False, duplicate=True)

            handled = await self._dispatch(uow, event)

        logger.info("webhook_processed", event_id=event.id, event_type=event.event, handled=handled)
        return WebhookResult(event_id=event.id, event=event.event, handled=handled)

    async def _dispatch(self, uow: AbstractUnitOfWork, event: WebhookEvent) -> bool:
        repo = uow.payment_repository
        if event.event.startswith("payment."):
            entity = event.entity("payment")
            payment = None
            if entity.get("order_id"):
                payment = await repo.get_by_razorpay_order_id(entity["order_id"])
            if payment is None and entity.get("id"):
                payment = await repo.get_by_razorpay_payment_id(entity["id"])
        elif event.event == "refund.processed":
            entity = event.entity("refund")
            payment = await repo.get_by_razorpay_payment_id(entity.get("payment_id") or "")
        else:
            logger.info("webhook_event_unhandled", event_type=event.event)
            return False

        if payment is None:
            logger.warning("webhook_payment_unknown", event_type=event.event, entity_id=entity.get("id"))
            return False

        try:
            if event.event == "payment.authorized":
                changed = payment.mark_authorized(entity.get("id"), entity)
            elif event.event == "payment.captured":
                changed = payment.mark_captured(entity)
            elif event.event == "payment.failed":
                changed = payment.mark_failed(
                    entity.get("error_description") or "Payment failed",
                    entity.get("error_code"),
                    entity,
                )
            elif event.event == "refund.processed":
                changed = payment.mark_refunded(
                    refund_id=entity.get("id"),
                    amount=_from_minor(entity.get("amount")) or payment.amount,
                    status=RefundStatus.PROCESSED,
                    refund=entity,
                )
            else:
                logger.info("webhook_event_unhandled", event_type=event.event)
                return False
        except DomainValidationException as exc:
            # Out-of-order delivery; the provider would keep retrying a 4xx/5xx.
            logger.warning(
                "webhook_transition_skipped",
                event_type=event.event,
                order_ref=payment.order_ref,
                status=payment.status.value,
                error=exc.message,
            )
            return False

        if changed:
            await repo.update(payment)
        return changed

    # 退款

    async def refund(
        self,
        payment_ref: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        processed_by: Optional[str] = None,
        speed: str = "normal",
    ) -> RefundResult:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_order_ref(payment_ref)
        if payment is None:
            raise PaymentNotFoundException(payment_ref)
        if not payment.can_refund():
            raise PaymentNotRefundableException(payment_ref, payment.status.value)

        refund = await self.gateway.process_refund(
            payment.razorpay_payment_id,
            amount,
            notes={
                "order_ref": payment.order_ref,
                "reason": reason or "Refund requested by admin",
                "processed_by": processed_by or "",
            },
            speed=speed,
        )
        refunded = _from_minor(refund.get("amount")) or amount or payment.amount
        payment.mark_refunded(
            refund_id=refund["id"],
            amount=refunded,
            status=RefundStatus.PENDING,
            refund=refund,
        )
        async with self._uow_factory() as uow:
            await uow.payment_repository.update(payment)

        logger.info(
            "refund_initiated",
            order_ref=payment_ref,
            refund_id=refund["id"],
            payment_id=payment.razorpay_payment_id,
            amount=str(refunded),
            processed_by=processed_by,
        )
        return RefundResult(
            refund_id=refund["id"],
            order_ref=payment_ref,
            amount=refunded,
            status=refund.get("status") or RefundStatus.PENDING.value,
        )

    # 查询

    async def payment_history(
        self,
        user_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 50,
    ) -> list[PaymentView]:
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_payments(user_id=user_id, status=status, limit=limit)
        return [self._to_view(p) for p in payments]

    async def get_provider_payment(self, payment_id: str) -> dict[str, Any]:
        return await self.gateway.fetch_payment_details(payment_id)

    def get_key_id(self) -> str:
        return self.gateway.get_key_id()

    async def reconcile(self, payment_ref: str) -> PaymentView:
        """Pull the provider order and capture a payment the webhook missed."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_order_ref(payment_ref)
        if payment is None:
            raise PaymentNotFoundException(payment_ref)
        if not payment.razorpay_order_id:
            return self._to_view(payment)

        order = await self.gateway.fetch_order_details(payment.razorpay_order_id)
        order_status = order.get("status")
        if (
            self.gateway.map_status(order_status) == PaymentStatus.CAPTURED.value
            and payment.status in (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED)
        ):
            attempts = await self.gateway.fetch_order_payments(payment.razorpay_order_id)
            captured = next((p for p in attempts if p.get("status") == "captured"), None)
            payment.mark_captured(captured)
            payment.provider_response = {**payment.provider_response, "order": order}
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.update(payment)

        logger.info(
            "payment_reconciled",
            order_ref=payment_ref,
            razorpay_order_id=payment.razorpay_order_id,
            order_status=order_status,
            status=payment.status.value,
        )
        return self._to_view(payment)

    @staticmethod
    def _to_view(payment: Payment) -> PaymentView:
        return PaymentView(
            order_ref=payment.order_ref,
            user_id=payment.user_id,
            razorpay_order_id=payment.razorpay_order_id,
            razorpay_payment_id=payment.razorpay_payment_id,
            amount=payment.amount,
            base_amount=payment.base_amount,
            gst_amount=payment.gst_amount,
            currency=payment.currency,
            status=payment.status.value,
            payment_mode=payment.payment_mode,
            invoice_number=payment.invoice_number,
            refund_amount=payment.refund_amount,
            refund_status=payment.refund_status.value if payment.refund_status else None,
            failure_reason=payment.failure_reason,
            metadata=payment.metadata,
            created_at=payment.created_at,
            captured_at=payment.captured_at,
        )

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()

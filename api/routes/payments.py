"""
Payments API routes.

Checkout (create order, verify callback), the provider webhook and admin
operations (history, provider lookup, refund, reconcile). Keep this thin:
business rules live in CheckoutService, provider details in the gateway.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import (
    CurrentUser,
    get_checkout_service,
    get_current_admin,
    get_current_user,
    get_payment_settings,
)
from api.utils.network import is_ip_allowed
from api.utils.rate_limit import create_order_limiter
from application.dtos.payments import (
    CreateCheckout,
    PaymentVerificationRequest,
    RefundRequest,
)
from application.services.checkout_service import CheckoutService
from core.exceptions import ForbiddenException
from core.logging_config import get_logger
from core.response import success_response
from core.settings import PaymentSettings
from domain.payment.entity import PaymentStatus


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post(
    "/create-order",
    summary="Create checkout order",
    dependencies=[Depends(create_order_limiter)],
)
async def create_order(
    payload: CreateCheckout,
    current_user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    session = await service.create_checkout(current_user.id, payload)
    return success_response(data=session.model_dump(mode="json"), message="Payment order created successfully")


@router.post("/verify", summary="Verify checkout callback")
async def verify_payment(
    payload: PaymentVerificationRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.verify_checkout(current_user.id, payload)
    return success_response(
        data=result.model_dump(mode="json"),
        message="Payment verified successfully! Your order is now being processed.",
    )


@router.post("/webhook", summary="Razorpay webhook")
async def payments_webhook(
    request: Request,
    service: CheckoutService = Depends(get_checkout_service),
    settings: PaymentSettings = Depends(get_payment_settings),
):
    webhook = settings.webhook
    if not webhook.skip_ip_check:
        remote_ip = getattr(request.state, "client_ip", None) or (request.client.host if request.client else None)
        if not is_ip_allowed(remote_ip, webhook.ip_allowlist):
            logger.warning("webhook_ip_rejected", remote_ip=remote_ip)
            raise ForbiddenException("Webhook source address not allowed")

    # Signature covers the exact bytes received
    raw_body = await request.body()
    result = await service.handle_webhook(
        raw_body,
        request.headers.get(webhook.signature_header),
        request.headers.get(webhook.event_id_header),
    )
    return success_response(
        data=result.model_dump(mode="json"),
        message="Duplicate event ignored" if result.duplicate else "Webhook received",
    )


@router.get("/history", summary="Payment history")
async def payment_history(
    status: Optional[PaymentStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: Optional[int] = Query(default=None, description="Admin only: filter by user"),
    current_user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    # Non-admin users can only see their own payments
    owner = user_id if current_user.is_admin else current_user.id
    payments = await service.payment_history(user_id=owner, status=status, limit=limit)
    return success_response(
        data={"results": len(payments), "payments": [p.model_dump(mode="json") for p in payments]}
    )


@router.get("/key", summary="Public checkout key id")
async def get_key(service: CheckoutService = Depends(get_checkout_service)):
    return success_response(data={"key_id": service.get_key_id()})


@router.get("/provider/{payment_id}", summary="Provider payment details")
async def provider_payment(
    payment_id: str,
    _: CurrentUser = Depends(get_current_admin),
    service: CheckoutService = Depends(get_checkout_service),
):
    payment = await service.get_provider_payment(payment_id)
    return success_response(data={"payment": payment})


@router.post("/refund", summary="Refund a payment")
async def refund_payment(
    payload: RefundRequest,
    admin: CurrentUser = Depends(get_current_admin),
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.refund(
        payload.order_ref,
        amount=payload.amount,
        reason=payload.reason,
        processed_by=admin.email or str(admin.id),
        speed=payload.speed,
    )
    return success_response(data=result.model_dump(mode="json"), message="Refund initiated successfully")


@router.post("/{payment_ref}/reconcile", summary="Reconcile with provider order")
async def reconcile_payment(
    payment_ref: str,
    _: CurrentUser = Depends(get_current_admin),
    service: CheckoutService = Depends(get_checkout_service),
):
    view = await service.reconcile(payment_ref)
    return success_response(data=view.model_dump(mode="json"))

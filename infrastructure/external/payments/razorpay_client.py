"""
Razorpay Orders/Payments/Refunds adapter over the REST API (httpx).

Notes on the API:
- Amounts are integers in the smallest currency unit (paise for INR).
- Orders are created with `payment_capture=1` so authorised payments are
  captured automatically.
- Checkout callbacks are signed as HMAC-SHA256(key_secret, "order_id|payment_id");
  webhooks as HMAC-SHA256(webhook_secret, raw_body). Both hex encoded.
"""
from __future__ import annotations

import hashlib
import hmac
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Union

import httpx

from application.dtos.payments import GSTBreakdown, PaymentVerificationRequest
from application.utils import billing, youtube
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    InvalidAmount,
    MissingParameters,
    MissingPaymentId,
    NotConfigured,
    PaymentProviderError,
)


# "expedited" is the generic name for what Razorpay calls "optimum"
REFUND_SPEEDS = {"normal": "normal", "optimum": "optimum", "expedited": "optimum"}


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        *,
        settings: Optional[PaymentSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        log: Any = None,
    ):
        cfg = settings or payment_settings
        rzp = cfg.razorpay
        super().__init__(
            base_url=rzp.api_base,
            auth=httpx.BasicAuth(rzp.key_id, rzp.key_secret) if rzp.configured else None,
            timeouts=cfg.timeouts.model_dump(),
            retry=cfg.retry,
            http_client=http_client,
            log=log,
        )
        self._key_id = rzp.key_id or ""
        self._key_secret = rzp.key_secret
        self._webhook_secret = rzp.webhook_secret
        self._configured = rzp.configured
        if not self._configured:
            self._warn("razorpay_not_configured", message="RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET missing; payment calls disabled")
        if not self._webhook_secret:
            self._warn("razorpay_webhook_secret_missing", message="RAZORPAY_WEBHOOK_SECRET missing; webhooks will be rejected")

    def is_configured(self) -> bool:
        return self._configured

    def get_key_id(self) -> str:
        """Public key id for client-side checkout initialisation."""
        return self._key_id

    def _ensure_configured(self) -> None:
        if not self._configured:
            raise NotConfigured(self.provider)

    @staticmethod
    def to_minor_units(amount: Union[int, float, str, Decimal]) -> int:
        """Major units -> positive integer minor units, rounding half up."""
        if isinstance(amount, bool) or amount is None:
            raise InvalidAmount(amount)
        if isinstance(amount, float) and not math.isfinite(amount):
            raise InvalidAmount(amount)
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidAmount(amount) from None
        if not value.is_finite() or value <= 0:
            raise InvalidAmount(amount)
        minor = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if minor <= 0:
            raise InvalidAmount(amount)
        return minor

    async def _call(self, method: str, path: str, *, action: str, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        try:
            resp = await self._request(method, path, json=json)
        except httpx.HTTPError as exc:
            message = str(exc) or exc.__class__.__name__
            raise PaymentProviderError(f"{action}: {message}", provider=self.provider) from exc

        if resp.is_error:
            code, description = self._parse_error(resp)
            raise PaymentProviderError(
                f"{action}: {description}",
                provider=self.provider,
                provider_code=code,
                details={"status_code": resp.status_code},
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise PaymentProviderError(f"{action}: invalid JSON response", provider=self.provider) from exc

    @staticmethod
    def _parse_error(resp: httpx.Response) -> tuple[Optional[str], str]:
        try:
            body = resp.json()
        except ValueError:
            return None, resp.text or resp.reason_phrase
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict):
            return err.get("code"), err.get("description") or resp.reason_phrase
        return None, resp.reason_phrase

    # Order intake

    async def create_order(
        self,
        amount: Union[int, float, str, Decimal],
        currency: str = "INR",
        receipt: Optional[str] = None,
        notes: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        self._ensure_configured()
        payload = {
            "amount": self.to_minor_units(amount),
            "currency": (currency or "INR").upper(),
            "receipt": receipt,
            "notes": dict(notes or {}),
            "payment_capture": 1,
        }
        order = await self._call("POST", "/v1/orders", action="Failed to create payment order", json=payload)
        self._log("razorpay_order_created", order_id=order.get("id"), amount=payload["amount"], currency=payload["currency"])
        return order

    # Signature verification

    @staticmethod
    def _hmac_hex(secret: str, message: bytes) -> str:
        return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_payment_signature(
        self, data: Union[PaymentVerificationRequest, Mapping[str, Any]]
    ) -> bool:
        if not isinstance(data, PaymentVerificationRequest):
            data = PaymentVerificationRequest.model_validate(
                {k: str(v) for k, v in dict(data).items() if v is not None}
            )
        missing = data.missing_fields()
        if missing:
            raise MissingParameters(missing)
        if not self._key_secret:
            self._warn("razorpay_signature_check_unconfigured", payment_id=data.payment_id)
            return False

        expected = self._hmac_hex(self._key_secret, f"{data.order_id}|{data.payment_id}".encode("utf-8"))
        valid = hmac.compare_digest(expected.encode("ascii"), data.signature.encode("utf-8"))
        if valid:
            self._log("razorpay_payment_signature_verified", payment_id=data.payment_id)
        else:
            self._warn("razorpay_payment_signature_invalid", payment_id=data.payment_id)
        return valid

    def verify_webhook_signature(self, raw_body: Union[bytes, str], signature_header: Optional[str]) -> bool:
        """Verify against the exact request bytes; never re-serialise the JSON."""
        if not self._webhook_secret:
            self._warn("razorpay_webhook_secret_missing", message="webhook rejected")
            return False
        if not signature_header:
            return False
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body)
        expected = self._hmac_hex(self._webhook_secret, body)
        return hmac.compare_digest(expected.encode("ascii"), signature_header.encode("utf-8"))

    # Reads

    async def fetch_payment_details(self, payment_id: str) -> dict[str, Any]:
        self._ensure_configured()
        payment = await self._call("GET", f"/v1/payments/{payment_id}", action="Failed to fetch payment")
        self._log("razorpay_payment_fetched", payment_id=payment_id, status=payment.get("status"))
        return payment

    async def fetch_order_details(self, order_id: str) -> dict[str, Any]:
        self._ensure_configured()
        order = await self._call("GET", f"/v1/orders/{order_id}", action="Failed to fetch order")
        self._log("razorpay_order_fetched", order_id=order_id, status=order.get("status"))
        return order

    async def fetch_order_payments(self, order_id: str) -> list[dict[str, Any]]:
        """All payment attempts made against an order."""
        self._ensure_configured()
        collection = await self._call("GET", f"/v1/orders/{order_id}/payments", action="Failed to fetch order payments")
        items = collection.get("items") or []
        self._log("razorpay_order_payments_fetched", order_id=order_id, count=len(items))
        return items

    # Refunds

    async def process_refund(
        self,
        payment_id: Optional[str] = None,
        amount: Union[int, float, str, Decimal, None] = None,
        notes: Optional[Mapping[str, Any]] = None,
        speed: str = "normal",
    ) -> dict[str, Any]:
        """Refund a captured payment. No amount means a full refund."""
        self._ensure_configured()
        if not payment_id:
            raise MissingPaymentId()
        if speed not in REFUND_SPEEDS:
            raise DomainValidationException(f"Unsupported refund speed: {speed}", field="speed")

        payload: dict[str, Any] = {"notes": dict(notes or {}), "speed": REFUND_SPEEDS[speed]}
        if amount is not None:
            payload["amount"] = self.to_minor_units(amount)

        refund = await self._call("POST", f"/v1/payments/{payment_id}/refund", action="Refund failed", json=payload)
        self._log(
            "razorpay_refund_created",
            refund_id=refund.get("id"),
            payment_id=payment_id,
            amount=refund.get("amount"),
            partial="amount" in payload,
        )
        return refund

    async def fetch_refund_details(self, payment_id: str, refund_id: str) -> dict[str, Any]:
        self._ensure_configured()
        refund = await self._call(
            "GET", f"/v1/payments/{payment_id}/refunds/{refund_id}", action="Failed to fetch refund"
        )
        self._log("razorpay_refund_fetched", refund_id=refund_id, status=refund.get("status"))
        return refund

    # Pure helpers re-exported for callers holding only the adapter

    @staticmethod
    def calculate_gst(base_amount: Union[int, float, str, Decimal], gst_rate: Union[int, float, str, Decimal] = 18) -> GSTBreakdown:
        return billing.calculate_gst(base_amount, gst_rate)

    @staticmethod
    def generate_invoice_number() -> str:
        return billing.generate_invoice_number()

    @staticmethod
    def validate_youtube_url(url: Any) -> bool:
        return youtube.validate_youtube_url(url)

    @staticmethod
    def extract_youtube_video_id(url: Any) -> Optional[str]:
        return youtube.extract_youtube_video_id(url)

    def map_status(self, provider_status: str) -> str:
        return self._map_status(provider_status)

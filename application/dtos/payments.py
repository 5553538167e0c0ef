"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.types import condecimal


class GSTBreakdown(BaseModel):
    base_amount: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    total_amount: Decimal


class PlanDetails(BaseModel):
    name: str
    price: condecimal(gt=0)  # type: ignore[valid-type]
    quantity: Optional[str] = None
    pricing_id: Optional[int] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_as_str(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @property
    def target_quantity(self) -> int:
        digits = "".join(ch for ch in (self.quantity or "") if ch.isdigit())
        return int(digits) if digits else 0


class CreateCheckout(BaseModel):
    video_url: str
    plan: PlanDetails
    channel_name: Optional[str] = None
    channel_url: Optional[str] = None


class CheckoutSession(BaseModel):
    """Everything the client widget needs to open Razorpay checkout."""

    order_ref: str
    razorpay_order_id: str
    key_id: str
    amount: Decimal
    amount_minor: int
    base_amount: Decimal
    gst_amount: Decimal
    gst_rate: Decimal
    currency: str
    video_id: Optional[str] = None


class PaymentVerificationRequest(BaseModel):
    """Checkout callback fields; accepts Razorpay's razorpay_* names."""

    order_id: str = Field(default="", validation_alias="razorpay_order_id")
    payment_id: str = Field(default="", validation_alias="razorpay_payment_id")
    signature: str = Field(default="", validation_alias="razorpay_signature")

    model_config = ConfigDict(populate_by_name=True)

    def missing_fields(self) -> list[str]:
        return [name for name in ("order_id", "payment_id", "signature") if not getattr(self, name)]


class VerificationResult(BaseModel):
    order_ref: str
    payment_id: str
    invoice_number: Optional[str]
    amount: Decimal
    status: str


class RefundRequest(BaseModel):
    order_ref: str
    amount: Optional[condecimal(gt=0)] = None  # type: ignore[valid-type]
    reason: Optional[str] = None
    speed: Literal["normal", "optimum", "expedited"] = "normal"


class RefundResult(BaseModel):
    refund_id: str
    order_ref: str
    amount: Decimal
    status: str


class WebhookEvent(BaseModel):
    id: Optional[str] = None
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[int] = None
    # raw fields for traceability (optional)
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    def entity(self, kind: str) -> dict[str, Any]:
        """Return payload.<kind>.entity, or {} when absent."""
        node = self.payload.get(kind)
        entity = node.get("entity") if isinstance(node, dict) else None
        return entity if isinstance(entity, dict) else {}


class WebhookResult(BaseModel):
    event_id: Optional[str]
    event: str
    handled: bool
    duplicate: bool = False


class PaymentView(BaseModel):
    order_ref: str
    user_id: Optional[int]
    razorpay_order_id: Optional[str]
    razorpay_payment_id: Optional[str]
    amount: Decimal
    base_amount: Optional[Decimal] = None
    gst_amount: Optional[Decimal] = None
    currency: str
    status: str
    payment_mode: Optional[str] = None
    invoice_number: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_status: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None

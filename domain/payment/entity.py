"""
支付领域实体 - 本地支付记录聚合根

Mirrors the provider's order/payment lifecycle so the storefront can track
checkout state. The provider stays the source of truth; this aggregate only
records what has been verified.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from enum import Enum

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 待支付（已创建渠道订单）
    AUTHORIZED = "authorized"     # 已授权
    CAPTURED = "captured"         # 已扣款（webhook 确认）
    SUCCESS = "success"           # 签名校验通过
    FAILED = "failed"             # 支付失败（同一订单可重试）
    REFUNDED = "refunded"         # 已退款


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


# A failed attempt can be followed by a successful retry on the same order
_RETRYABLE = frozenset({PaymentStatus.PENDING, PaymentStatus.FAILED})

# Allowed source states per target state
_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.AUTHORIZED: _RETRYABLE,
    PaymentStatus.CAPTURED: _RETRYABLE | {PaymentStatus.AUTHORIZED, PaymentStatus.SUCCESS},
    PaymentStatus.SUCCESS: _RETRYABLE | {PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED},
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.AUTHORIZED}),
    PaymentStatus.REFUNDED: frozenset({PaymentStatus.SUCCESS, PaymentStatus.CAPTURED}),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Payment:
    """
    支付聚合根 - 管理本地支付记录的生命周期

    业务规则：
    1. 金额必须大于0
    2. 状态转换必须遵循状态机
    3. 重复应用当前状态视为幂等（webhook 重放）
    4. 只有成功或已扣款的支付才能退款
    """

    id: Optional[int]
    order_ref: str  # 本地订单号，同时作为渠道 receipt
    user_id: Optional[int]
    amount: Decimal  # 含税总额（主货币单位）
    currency: str = "INR"
    status: PaymentStatus = PaymentStatus.PENDING

    # 渠道信息
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    payment_mode: Optional[str] = None  # card, upi, netbanking, wallet ...

    # 税费
    base_amount: Optional[Decimal] = None
    gst_amount: Optional[Decimal] = None
    gst_rate: Optional[Decimal] = None

    # 失败信息
    failure_reason: Optional[str] = None
    failure_code: Optional[str] = None

    # 退款信息
    refund_amount: Optional[Decimal] = None
    refund_id: Optional[str] = None
    refund_status: Optional[RefundStatus] = None

    invoice_number: Optional[str] = None

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    metadata: dict = field(default_factory=dict)
    provider_response: dict = field(default_factory=dict)

    def __post_init__(self):
        """初始化后验证"""
        self._validate_amount()
        self._validate_currency()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.authorized_at = _ensure_utc(self.authorized_at)
        self.captured_at = _ensure_utc(self.captured_at)
        self.refunded_at = _ensure_utc(self.refunded_at)
        if self.metadata is None:
            self.metadata = {}
        if self.provider_response is None:
            self.provider_response = {}

    def _validate_amount(self) -> None:
        if self.amount <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {self.amount}",
                field="amount",
            )

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"Invalid currency code: {self.currency}",
                field="currency",
            )

    def _transition(self, target: PaymentStatus) -> bool:
        """Move to `target`. Returns False when already there (replay)."""
        if self.status == target:
            return False
        if self.status not in _TRANSITIONS[target]:
            raise DomainValidationException(
                f"Cannot transition payment from {self.status.value} to {target.value}",
                field="status",
            )
        self.status = target
        self.updated_at = _now()
        return True

    def _clear_failure(self) -> None:
        self.failure_reason = None
        self.failure_code = None

    def mark_authorized(self, payment_id: str, response: Optional[dict[str, Any]] = None) -> bool:
        changed = self._transition(PaymentStatus.AUTHORIZED)
        if changed:
            self.razorpay_payment_id = payment_id
            self.authorized_at = self.updated_at
            self._clear_failure()
            if response is not None:
                self.provider_response = response
        return changed

    def mark_captured(self, response: Optional[dict[str, Any]] = None) -> bool:
        """`response` is the captured payment entity; its id replaces an earlier attempt's."""
        changed = self._transition(PaymentStatus.CAPTURED)
        if changed:
            self.captured_at = self.updated_at
            self._clear_failure()
            if response is not None:
                self.provider_response = response
                self.razorpay_payment_id = response.get("id") or self.razorpay_payment_id
                self.payment_mode = response.get("method") or self.payment_mode
        return changed

    def mark_succeeded(
        self,
        *,
        payment_id: str,
        signature: str,
        invoice_number: str,
        payment_mode: Optional[str] = None,
        response: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        标记签名校验通过的支付

        业务规则：客户端回调只有在签名通过后才能推进状态
        """
        changed = self._transition(PaymentStatus.SUCCESS)
        if changed:
            self.razorpay_payment_id = payment_id
            self.razorpay_signature = signature
            self.invoice_number = invoice_number
            self.payment_mode = payment_mode
            self.provider_response = response or {}
            self.captured_at = self.updated_at
            self._clear_failure()
        return changed

    def mark_failed(self, reason: Optional[str] = None, code: Optional[str] = None,
                    response: Optional[dict[str, Any]] = None) -> bool:
        changed = self._transition(PaymentStatus.FAILED)
        if changed:
            self.failure_reason = reason or "Payment failed"
            self.failure_code = code
            if response is not None:
                self.provider_response = response
        return changed

    def can_refund(self) -> bool:
        return self.status in (PaymentStatus.SUCCESS, PaymentStatus.CAPTURED) and bool(self.razorpay_payment_id)

    def mark_refunded(
        self,
        *,
        refund_id: str,
        amount: Decimal,
        status: RefundStatus,
        refund: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        记录退款

        `refund.processed` webhooks may arrive after the refund was initiated
        locally; in that case only the refund status is advanced.
        """
        if self.status == PaymentStatus.REFUNDED:
            if self.refund_id == refund_id and self.refund_status != status:
                self.refund_status = status
                self.updated_at = _now()
                return True
            return False
        self._transition(PaymentStatus.REFUNDED)
        self.refund_id = refund_id
        self.refund_amount = amount
        self.refund_status = status
        self.refunded_at = self.updated_at
        if refund is not None:
            self.provider_response = {**(self.provider_response or {}), "refund": refund}
        return True

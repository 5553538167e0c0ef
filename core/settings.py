"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Razorpay credentials keep their conventional flat names
(RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET / RAZORPAY_WEBHOOK_SECRET);
everything else lives under PAYMENT__*.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


# Razorpay webhook source ranges (AWS Mumbai)
RAZORPAY_WEBHOOK_CIDRS = ["3.6.127.0/25", "3.7.171.128/25"]


class PaymentTimeouts(BaseModel):
    connect: float = 3.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class RetryPolicy(BaseModel):
    """Caller-owned retry policy. One attempt means no retry."""

    max_attempts: int = Field(default=1, ge=1)
    base_backoff: float = 0.2
    max_backoff: float = 2.0


class WebhookSettings(BaseModel):
    signature_header: str = "X-Razorpay-Signature"
    event_id_header: str = "X-Razorpay-Event-Id"
    ip_allowlist: list[str] | None = Field(default_factory=lambda: list(RAZORPAY_WEBHOOK_CIDRS))
    skip_ip_check: bool = False


class RazorpaySettings(BaseSettings):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_base: str = "https://api.razorpay.com"

    model_config = SettingsConfigDict(
        env_prefix="RAZORPAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)


class PaymentSettings(BaseSettings):
    currency: str = "INR"
    gst_rate: Decimal = Decimal("18")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()

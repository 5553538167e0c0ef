"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Any, Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(
    provider: Optional[str] = None,
    *,
    settings: Optional[PaymentSettings] = None,
    **kwargs: Any,
) -> PaymentGateway:
    name = (provider or "razorpay").lower()
    if name in {"razorpay", "rzp"}:
        from .razorpay_client import RazorpayClient
        return RazorpayClient(settings=settings or payment_settings, **kwargs)
    raise ValueError(f"Unsupported payment provider: {name}")

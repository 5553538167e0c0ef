"""Tax and document-numbering helpers for checkout. Pure, no I/O."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
import secrets
import uuid

from application.dtos.payments import GSTBreakdown


Number = Union[int, float, str, Decimal]

DEFAULT_GST_RATE = Decimal("18")
_CENT = Decimal("0.01")


def _to_decimal(value: Number) -> Decimal:
    # str() first so floats keep their shortest repr instead of binary noise
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return _to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_gst(base_amount: Number, gst_rate: Number = DEFAULT_GST_RATE) -> GSTBreakdown:
    """Split a pre-tax amount into GST and total, each rounded to 2 places.

    >>> calculate_gst(1000, 18).total_amount
    Decimal('1180.00')
    """
    base = _to_decimal(base_amount)
    rate = _to_decimal(gst_rate)
    gst = base * rate / Decimal(100)
    return GSTBreakdown(
        base_amount=round_money(base),
        gst_rate=round_money(rate),
        gst_amount=round_money(gst),
        total_amount=round_money(base + gst),
    )


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    """INV-YYYYMMDD-RRRR with a zero-padded random 4 digit suffix.

    Not unique on its own: same-day collisions are rejected by the unique
    index on payments.invoice_number.
    """
    now = now or datetime.now(timezone.utc)
    return f"INV-{now:%Y%m%d}-{secrets.randbelow(10000):04d}"


def generate_order_reference(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"

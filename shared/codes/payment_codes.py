"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6000x)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002

    # Adapter usage errors (6001x)
    NOT_CONFIGURED = 60010
    INVALID_AMOUNT = 60011
    MISSING_PARAMETERS = 60012
    MISSING_PAYMENT_ID = 60013

    # Checkout flow (6002x)
    PAYMENT_NOT_FOUND = 60020
    PAYMENT_ACCESS_DENIED = 60021
    VERIFICATION_FAILED = 60022
    NOT_REFUNDABLE = 60023
    INVALID_VIDEO_URL = 60024


# Razorpay entity status -> local payment status
PROVIDER_STATUS_TO_INTERNAL = {
    "razorpay": {
        "created": "pending",
        "attempted": "pending",
        "authorized": "authorized",
        "captured": "captured",
        "paid": "captured",
        "failed": "failed",
        "refunded": "refunded",
    },
}

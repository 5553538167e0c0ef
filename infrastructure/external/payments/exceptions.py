"""
Exceptions for payment providers mapped to unified BusinessException variants.

Signature mismatches are never raised: verification returns False. These
exceptions mean the call itself was malformed or could not be served.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class NotConfigured(BusinessException):
    def __init__(self, provider: str, message: str | None = None):
        super().__init__(
            code=PaymentCode.NOT_CONFIGURED,
            message=message or f"{provider} is not configured. Please check your credentials.",
            error_type="NotConfigured",
            details={"provider": provider},
        )


class InvalidAmount(BusinessException):
    def __init__(self, amount: object):
        super().__init__(
            code=PaymentCode.INVALID_AMOUNT,
            message="Invalid amount. Amount must be greater than 0.",
            error_type="InvalidAmount",
            details={"amount": str(amount)},
            field="amount",
        )


class MissingParameters(BusinessException):
    def __init__(self, missing: list[str]):
        super().__init__(
            code=PaymentCode.MISSING_PARAMETERS,
            message="Missing required payment verification parameters",
            error_type="MissingParameters",
            details={"missing": missing},
        )


class MissingPaymentId(BusinessException):
    def __init__(self):
        super().__init__(
            code=PaymentCode.MISSING_PAYMENT_ID,
            message="Payment ID is required for refund",
            error_type="MissingPaymentId",
            field="payment_id",
        )

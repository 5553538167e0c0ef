"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PaymentNotFoundException(BusinessException):
    """支付记录不存在"""

    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"identifier": identifier},
        )


class PaymentAccessDeniedException(BusinessException):
    """当前用户不是该订单的所有者"""

    def __init__(self, order_ref: str):
        super().__init__(
            code=PaymentCode.PAYMENT_ACCESS_DENIED,
            message="Not authorized to verify this payment",
            error_type="PaymentAccessDenied",
            details={"order_ref": order_ref},
        )


class PaymentVerificationFailedException(BusinessException):
    """支付签名校验失败"""

    def __init__(self, order_ref: str):
        super().__init__(
            code=PaymentCode.VERIFICATION_FAILED,
            message="Payment verification failed. Invalid signature.",
            error_type="PaymentVerificationFailed",
            details={"order_ref": order_ref},
        )


class WebhookSignatureInvalidException(BusinessException):
    def __init__(self):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message="Invalid webhook signature",
            error_type="WebhookSignatureInvalid",
        )


class PaymentNotRefundableException(BusinessException):
    """支付不可退款"""

    def __init__(self, order_ref: str, status: str):
        super().__init__(
            code=PaymentCode.NOT_REFUNDABLE,
            message="No successful payment found for this order",
            error_type="PaymentNotRefundable",
            details={"order_ref": order_ref, "status": status},
        )


class InvalidVideoUrlException(BusinessException):
    def __init__(self, url: str):
        super().__init__(
            code=PaymentCode.INVALID_VIDEO_URL,
            message="Please provide a valid YouTube video URL (e.g., https://youtube.com/watch?v=xxxxx)",
            error_type="InvalidVideoUrl",
            details={"url": url},
            field="video_url",
        )

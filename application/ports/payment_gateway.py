"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol, Union, runtime_checkable

from application.dtos.payments import PaymentVerificationRequest


Amount = Union[int, float, str, Decimal]


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the checkout payment provider.

    Network operations are async; signature checks are pure and synchronous
    and return False on mismatch instead of raising.
    """

    provider: str

    def is_configured(self) -> bool: ...

    def get_key_id(self) -> str: ...

    async def create_order(
        self,
        amount: Amount,
        currency: str = "INR",
        receipt: Optional[str] = None,
        notes: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]: ...

    def verify_payment_signature(self, data: Union[PaymentVerificationRequest, Mapping[str, Any]]) -> bool: ...

    def verify_webhook_signature(self, raw_body: Union[bytes, str], signature_header: Optional[str]) -> bool: ...

    async def fetch_payment_details(self, payment_id: str) -> dict[str, Any]: ...

    async def fetch_order_details(self, order_id: str) -> dict[str, Any]: ...

    async def fetch_order_payments(self, order_id: str) -> list[dict[str, Any]]: ...

    async def process_refund(
        self,
        payment_id: Optional[str] = None,
        amount: Optional[Amount] = None,
        notes: Optional[Mapping[str, Any]] = None,
        speed: str = "normal",
    ) -> dict[str, Any]: ...

    async def fetch_refund_details(self, payment_id: str, refund_id: str) -> dict[str, Any]: ...

    def map_status(self, provider_status: str) -> str: ...

"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel, WebhookEventModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "WebhookEventModel",
]

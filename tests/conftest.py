"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings, and provide shared fakes.
"""
import os

# Settings are read at import time; keep tests off real databases and keys
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test_webhook_secret")

import httpx
import pytest

from core.settings import PaymentSettings, RazorpaySettings, RetryPolicy


KEY_ID = "rzp_test_key"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


def build_settings(configured: bool = True, webhook_secret: str | None = WEBHOOK_SECRET, **overrides) -> PaymentSettings:
    razorpay = RazorpaySettings(
        key_id=KEY_ID if configured else None,
        key_secret=KEY_SECRET if configured else None,
        webhook_secret=webhook_secret,
        api_base="https://api.razorpay.test",
    )
    return PaymentSettings(razorpay=razorpay, **overrides)


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return build_settings()


@pytest.fixture
def make_client(payment_settings):
    """Build a RazorpayClient whose HTTP traffic goes to `handler`."""
    from infrastructure.external.payments.razorpay_client import RazorpayClient

    def _make(handler, settings: PaymentSettings | None = None, retry: RetryPolicy | None = None):
        cfg = settings or payment_settings
        if retry is not None:
            cfg = cfg.model_copy(update={"retry": retry})
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RazorpayClient(settings=cfg, http_client=http)

    return _make


@pytest.fixture
def settings_factory():
    return build_settings

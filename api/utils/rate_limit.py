"""
Per-client rate limiting for individual endpoints.

Used as a route dependency; the client key is the IP resolved by
RequestIDMiddleware. Counters live in the `limits` storage named by
RATE_LIMIT_STORAGE_URI (in-process memory by default, redis for
multi-instance deployments).
"""
import time
from typing import Optional

from fastapi import Request
from limits import parse
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

from core.config import settings
from core.exceptions import RateLimitException
from core.logging_config import get_logger


logger = get_logger(__name__)


class RateLimiter:
    """Moving-window limiter keyed by client IP."""

    def __init__(self, limit: str, key_prefix: str, storage_uri: Optional[str] = None):
        self.item = parse(limit)
        self.key_prefix = key_prefix
        self._storage = storage_from_string(storage_uri or settings.RATE_LIMIT_STORAGE_URI)
        self._strategy = MovingWindowRateLimiter(self._storage)

    async def __call__(self, request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        client_ip = getattr(request.state, "client_ip", None) or (
            request.client.host if request.client else "unknown"
        )
        if await self._strategy.hit(self.item, self.key_prefix, client_ip):
            return

        reset_time, _ = await self._strategy.get_window_stats(self.item, self.key_prefix, client_ip)
        retry_after = max(1, int(reset_time - time.time()))
        logger.warning("rate_limited", key=self.key_prefix, client_ip=client_ip, retry_after=retry_after)
        raise RateLimitException(retry_after=retry_after)


# POST /payments/create-order
create_order_limiter = RateLimiter(settings.CREATE_ORDER_RATE_LIMIT, key_prefix="create_order")

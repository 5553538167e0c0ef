"""
请求/响应日志中间件

记录每个HTTP请求的开始与结束（状态码、耗时）。请求体仅在开关打开时记录，
并对签名、密钥与支付敏感字段（卡信息、VPA、联系方式、notes）脱敏；
webhook 原始报文从不记录，只记录事件ID与是否携带签名。
"""
import time
import json
from typing import Any, Optional
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.logging_config import get_logger, REDACTED_KEYS
from core.config import settings
from core.settings import payment_settings


logger = get_logger(__name__)

MASK = "***"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    日志记录中间件

    功能：
    1. 记录请求信息（方法、路径、调用方、可选的脱敏请求体）
    2. 记录响应信息（状态码、耗时），按状态码选择日志级别
    3. 记录未处理异常后继续抛出，交给全局异常处理器
    """

    # 跳过日志的路径
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    # 从不记录请求体的路径（渠道回调报文含客户信息）
    NO_BODY_SUFFIXES = ("/payments/webhook",)

    # 请求体中需要脱敏的字段
    SENSITIVE_FIELDS = REDACTED_KEYS | {
        "token", "api_key", "card", "notes", "vpa", "email", "contact", "bank_account",
    }

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES
        self.signature_header: str = payment_settings.webhook.signature_header
        self.event_id_header: str = payment_settings.webhook.event_id_header

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = await self._get_request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - start_time, 4),
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        self._log_response(response.status_code, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _get_request_info(self, request: Request) -> dict:
        info: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
        }
        if request.query_params:
            info["query_params"] = dict(request.query_params)

        user_id = request.headers.get("X-User-Id")
        if user_id:
            info["user_id"] = user_id

        if self._is_webhook(request):
            info["event_id"] = request.headers.get(self.event_id_header)
            info["has_signature"] = bool(request.headers.get(self.signature_header))
            return info

        if request.method in ("POST", "PUT", "PATCH") and self._should_log_body(request):
            body = await self._extract_and_sanitize_body(request)
            if body is not None:
                info["body"] = body
        return info

    def _is_webhook(self, request: Request) -> bool:
        return request.url.path.endswith(self.NO_BODY_SUFFIXES)

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 可按请求覆盖
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    async def _extract_and_sanitize_body(self, request: Request) -> Optional[Any]:
        body = await request.body()
        if not body:
            return None

        text = body[: self.max_body_log_bytes].decode("utf-8", errors="ignore")
        content_type = request.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            try:
                parsed: Any = json.loads(text)
            except ValueError:
                # truncated or malformed JSON
                return {"truncated": len(body) > self.max_body_log_bytes, "size": len(body)}
        elif "application/x-www-form-urlencoded" in content_type:
            parsed = {k: v if len(v) > 1 else v[0] for k, v in parse_qs(text).items()}
        else:
            return {"content_type": content_type or None, "size": len(body)}
        return self._sanitize(parsed)

    def _sanitize(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: (MASK if str(k).lower() in self.SENSITIVE_FIELDS else self._sanitize(v))
                for k, v in data.items()
            }
        if isinstance(data, list):
            return [self._sanitize(v) for v in data]
        return data

    def _log_response(self, status_code: int, duration: float, request_info: dict) -> None:
        log_data = {"status_code": status_code, "duration": round(duration, 4), **request_info}
        log_data.pop("body", None)
        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)

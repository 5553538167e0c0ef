"""
Request ID 中间件
用于生成或透传追踪ID、解析客户端IP，并通过contextvars传递给日志系统。

客户端IP也是 webhook 来源白名单的判断依据，所以只有在部署于可信反向代理
之后（TRUST_PROXY_HEADERS=true）才采用 X-Forwarded-For / X-Real-IP。
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from core.config import settings


# 定义context变量，用于在请求生命周期内共享request_id
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    1. 从请求头获取或生成新的request_id，并在响应头中返回
    2. 解析客户端IP，写入 request.state.client_ip
    3. 绑定 request_id / client_ip / user_id 到 structlog 上下文
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self._get_client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
        }
        user_id = request.headers.get("X-User-Id")
        if user_id:
            context["user_id"] = user_id
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    def _get_client_ip(self, request: Request) -> Optional[str]:
        if settings.TRUST_PROXY_HEADERS:
            # 取第一个IP（原始客户端IP）
            x_forwarded_for = request.headers.get("X-Forwarded-For")
            if x_forwarded_for:
                return x_forwarded_for.split(",")[0].strip()
            x_real_ip = request.headers.get("X-Real-IP")
            if x_real_ip:
                return x_real_ip.strip()
        return request.client.host if request.client else None


def get_request_id() -> Optional[str]:
    """获取当前请求的request_id（不在请求上下文中时为None）"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    """获取当前请求的客户端IP（不在请求上下文中时为None）"""
    return client_ip_var.get()

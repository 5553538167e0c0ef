"""
API依赖项 - 身份与服务装配

身份由上游网关（认证服务）解析后通过请求头透传：
X-User-Id / X-User-Role / X-User-Email。本服务只做授权判断。
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from core.exceptions import ForbiddenException, UnauthorizedException
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str = "client"
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_payment_settings() -> PaymentSettings:
    return payment_settings


def get_gateway(request: Request) -> PaymentGateway:
    """应用级共享的网关（lifespan 中创建），未初始化时临时创建"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = get_payment_gateway()
        request.app.state.payment_gateway = gateway
    return gateway


def get_checkout_service(
    gateway: PaymentGateway = Depends(get_gateway),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> CheckoutService:
    return CheckoutService(gateway=gateway, uow_factory=SQLAlchemyUnitOfWork, settings=settings)


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> CurrentUser:
    """获取当前登录用户"""
    if not x_user_id:
        raise UnauthorizedException("Authentication required")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedException("Invalid user identity") from None
    return CurrentUser(id=user_id, role=(x_user_role or "client").lower(), email=x_user_email)


async def get_current_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """获取当前管理员用户"""
    if not current_user.is_admin:
        raise ForbiddenException("Admin privileges required")
    return current_user

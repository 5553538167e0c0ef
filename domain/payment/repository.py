"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_order_ref(self, order_ref: str) -> Optional[Payment]:
        """根据本地订单号获取支付"""
        pass

    @abstractmethod
    async def get_by_razorpay_order_id(self, razorpay_order_id: str) -> Optional[Payment]:
        """根据渠道订单ID获取支付"""
        pass

    @abstractmethod
    async def get_by_razorpay_payment_id(self, razorpay_payment_id: str) -> Optional[Payment]:
        """根据渠道支付ID获取支付"""
        pass

    @abstractmethod
    async def list_payments(
        self,
        user_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 50,
    ) -> List[Payment]:
        """按创建时间倒序列出支付（可按用户/状态过滤）"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass


class WebhookEventRepository(ABC):
    """已处理 webhook 事件记录，用于幂等去重"""

    @abstractmethod
    async def record(self, event_id: str, event_type: str) -> bool:
        """记录事件；已存在时返回 False"""
        pass

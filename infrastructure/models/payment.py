"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON, Index
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    # 订单信息
    order_ref = Column(String(50), unique=True, nullable=False, comment="本地订单号（渠道 receipt）")
    user_id = Column(Integer, nullable=True, index=True, comment="用户ID")

    # Razorpay 引用
    razorpay_order_id = Column(String(255), nullable=True, unique=True, comment="Razorpay order ID")
    razorpay_payment_id = Column(String(255), nullable=True, index=True, comment="Razorpay payment ID")
    razorpay_signature = Column(String(500), nullable=True, comment="校验通过的签名")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="含税总额")
    base_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="税前金额")
    gst_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="GST 金额")
    gst_rate = Column(Numeric(precision=5, scale=2), nullable=True, comment="GST 税率(%)")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/authorized/captured/success/failed/refunded",
    )
    payment_mode = Column(String(50), nullable=True, comment="card/upi/netbanking/wallet")

    # 失败信息
    failure_reason = Column(Text, nullable=True)
    failure_code = Column(String(50), nullable=True)

    # 退款信息
    refund_amount = Column(Numeric(precision=10, scale=2), nullable=True)
    refund_id = Column(String(255), nullable=True)
    refund_status = Column(String(20), nullable=True, comment="pending/processed/failed")

    invoice_number = Column(String(100), nullable=True, unique=True)

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间",
    )
    authorized_at = Column(DateTime(timezone=True), nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据（视频、套餐）")
    provider_response = Column(JSON, nullable=True, comment="渠道最近一次返回")

    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_ref='{self.order_ref}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class WebhookEventModel(Base):
    """已处理的 webhook 事件（按事件ID去重）"""
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(100), unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    received_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<WebhookEventModel(event_id='{self.event_id}', event_type='{self.event_type}')>"

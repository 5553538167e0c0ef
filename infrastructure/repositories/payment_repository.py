"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.payment.entity import Payment, PaymentStatus, RefundStatus
from domain.payment.repository import PaymentRepository, WebhookEventRepository
from infrastructure.models.payment import PaymentModel, WebhookEventModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _dec(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    # 可变字段（update 时整体回写）
    _MUTABLE = (
        "razorpay_order_id", "razorpay_payment_id", "razorpay_signature",
        "payment_mode", "failure_reason", "failure_code", "refund_amount",
        "refund_id", "invoice_number", "authorized_at",
        "captured_at", "refunded_at", "provider_response",
    )

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_ref=model.order_ref,
            user_id=model.user_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=PaymentStatus(model.status),
            razorpay_order_id=model.razorpay_order_id,
            razorpay_payment_id=model.razorpay_payment_id,
            razorpay_signature=model.razorpay_signature,
            payment_mode=model.payment_mode,
            base_amount=_dec(model.base_amount),
            gst_amount=_dec(model.gst_amount),
            gst_rate=_dec(model.gst_rate),
            failure_reason=model.failure_reason,
            failure_code=model.failure_code,
            refund_amount=_dec(model.refund_amount),
            refund_id=model.refund_id,
            refund_status=RefundStatus(model.refund_status) if model.refund_status else None,
            invoice_number=model.invoice_number,
            created_at=model.created_at,
            updated_at=model.updated_at,
            authorized_at=model.authorized_at,
            captured_at=model.captured_at,
            refunded_at=model.refunded_at,
            metadata=model.extra_metadata or {},
            provider_response=model.provider_response or {},
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        # explicit None would bypass the column defaults
        now = datetime.now(timezone.utc)
        return PaymentModel(
            id=entity.id,
            order_ref=entity.order_ref,
            user_id=entity.user_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            razorpay_order_id=entity.razorpay_order_id,
            razorpay_payment_id=entity.razorpay_payment_id,
            razorpay_signature=entity.razorpay_signature,
            payment_mode=entity.payment_mode,
            base_amount=entity.base_amount,
            gst_amount=entity.gst_amount,
            gst_rate=entity.gst_rate,
            failure_reason=entity.failure_reason,
            failure_code=entity.failure_code,
            refund_amount=entity.refund_amount,
            refund_id=entity.refund_id,
            refund_status=entity.refund_status.value if entity.refund_status else None,
            invoice_number=entity.invoice_number,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
            authorized_at=entity.authorized_at,
            captured_at=entity.captured_at,
            refunded_at=entity.refunded_at,
            extra_metadata=entity.metadata,
            provider_response=entity.provider_response,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_record_created",
            payment_id=db_payment.id,
            order_ref=db_payment.order_ref,
            razorpay_order_id=db_payment.razorpay_order_id,
        )
        return self._to_entity(db_payment)

    async def _get_one(self, *criteria) -> Optional[Payment]:
        result = await self.session.execute(select(PaymentModel).where(*criteria))
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_order_ref(self, order_ref: str) -> Optional[Payment]:
        return await self._get_one(PaymentModel.order_ref == order_ref)

    async def get_by_razorpay_order_id(self, razorpay_order_id: str) -> Optional[Payment]:
        return await self._get_one(PaymentModel.razorpay_order_id == razorpay_order_id)

    async def get_by_razorpay_payment_id(self, razorpay_payment_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.razorpay_payment_id == razorpay_payment_id)
            .order_by(PaymentModel.id.desc())
            .limit(1)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_payments(
        self,
        user_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
        limit: int = 50,
    ) -> List[Payment]:
        query = select(PaymentModel)
        if user_id is not None:
            query = query.where(PaymentModel.user_id == user_id)
        if status:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise ValueError(f"Payment with id {payment.id} not found")

        for name in self._MUTABLE:
            setattr(db_payment, name, getattr(payment, name))
        db_payment.status = payment.status.value
        db_payment.refund_status = payment.refund_status.value if payment.refund_status else None
        db_payment.extra_metadata = payment.metadata
        db_payment.updated_at = payment.updated_at or datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_record_updated",
            payment_id=db_payment.id,
            order_ref=db_payment.order_ref,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)


class SQLAlchemyWebhookEventRepository(WebhookEventRepository):
    """Webhook 事件去重记录"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, event_id: str, event_type: str) -> bool:
        result = await self.session.execute(
            select(WebhookEventModel.id).where(WebhookEventModel.event_id == event_id)
        )
        if result.scalar_one_or_none() is not None:
            return False
        # A concurrent delivery of the same event fails on the unique index at
        # flush; the provider then redelivers and hits the branch above.
        self.session.add(WebhookEventModel(event_id=event_id, event_type=event_type))
        await self.session.flush()
        return True

"""add_payments_tables

Revision ID: 5c1e9a7b2f40
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e9a7b2f40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_ref', sa.String(length=50), nullable=False, comment='本地订单号（渠道 receipt）'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='用户ID'),
        sa.Column('razorpay_order_id', sa.String(length=255), nullable=True, comment='Razorpay order ID'),
        sa.Column('razorpay_payment_id', sa.String(length=255), nullable=True, comment='Razorpay payment ID'),
        sa.Column('razorpay_signature', sa.String(length=500), nullable=True, comment='校验通过的签名'),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False, comment='含税总额'),
        sa.Column('base_amount', sa.Numeric(precision=10, scale=2), nullable=True, comment='税前金额'),
        sa.Column('gst_amount', sa.Numeric(precision=10, scale=2), nullable=True, comment='GST 金额'),
        sa.Column('gst_rate', sa.Numeric(precision=5, scale=2), nullable=True, comment='GST 税率(%)'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending',
                  comment='支付状态: pending/authorized/captured/success/failed/refunded'),
        sa.Column('payment_mode', sa.String(length=50), nullable=True, comment='card/upi/netbanking/wallet'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('failure_code', sa.String(length=50), nullable=True),
        sa.Column('refund_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('refund_id', sa.String(length=255), nullable=True),
        sa.Column('refund_status', sa.String(length=20), nullable=True, comment='pending/processed/failed'),
        sa.Column('invoice_number', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('authorized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据（视频、套餐）'),
        sa.Column('provider_response', sa.JSON(), nullable=True, comment='渠道最近一次返回'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_ref'),
        sa.UniqueConstraint('razorpay_order_id'),
        sa.UniqueConstraint('invoice_number'),
    )

    # Create indexes
    op.create_index('ix_payments_id', 'payments', ['id'], unique=False)
    op.create_index('ix_payments_user_id', 'payments', ['user_id'], unique=False)
    op.create_index('ix_payments_razorpay_payment_id', 'payments', ['razorpay_payment_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_user_status', 'payments', ['user_id', 'status'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False)

    # Create webhook_events table
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.String(length=100), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id'),
    )


def downgrade() -> None:
    op.drop_table('webhook_events')

    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_user_status', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_razorpay_payment_id', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_index('ix_payments_id', table_name='payments')
    op.drop_table('payments')

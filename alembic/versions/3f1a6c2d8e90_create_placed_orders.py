"""create_placed_orders

Revision ID: 3f1a6c2d8e90
Revises:
Create Date: 2026-10-19 09:12:41.305118

"""
from alembic import op
import sqlalchemy as sa


revision = '3f1a6c2d8e90'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'placed_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('checkout_id', sa.String(length=64), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('payment_status', sa.Enum('UNPAID', 'PENDING', 'PAID', 'FAILED', name='paymentstatus'), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('shipping_fee', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_placed_orders_id'), 'placed_orders', ['id'], unique=False)
    op.create_index(op.f('ix_placed_orders_order_id'), 'placed_orders', ['order_id'], unique=True)
    op.create_index(op.f('ix_placed_orders_checkout_id'), 'placed_orders', ['checkout_id'], unique=False)
    op.create_index(op.f('ix_placed_orders_customer_email'), 'placed_orders', ['customer_email'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_placed_orders_customer_email'), table_name='placed_orders')
    op.drop_index(op.f('ix_placed_orders_checkout_id'), table_name='placed_orders')
    op.drop_index(op.f('ix_placed_orders_order_id'), table_name='placed_orders')
    op.drop_index(op.f('ix_placed_orders_id'), table_name='placed_orders')
    op.drop_table('placed_orders')

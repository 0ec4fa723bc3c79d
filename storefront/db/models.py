"""
Local record of orders placed through this storefront.

The backend owns orders; this mirror only remembers what the shopper was
shown at placement time so the confirmation and payment-return pages can be
rendered without trusting query parameters.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Enum as SQLEnum
import enum

from storefront.db.base import Base


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PlacedOrder(Base):
    __tablename__ = "placed_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    order_number = Column(String(64), nullable=True)
    checkout_id = Column(String(64), nullable=True, index=True)
    customer_email = Column(String(255), nullable=True, index=True)
    payment_method = Column(String(32), nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False)
    subtotal = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    shipping_fee = Column(Numeric(14, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    shipping_address = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


__all__ = [
    "PlacedOrder",
    "PaymentStatus",
    "Base"
]

from pydantic import BaseModel, ConfigDict
from decimal import Decimal
from typing import Any, List, Optional
from datetime import datetime

from storefront.db.models import PaymentStatus


class PlacedOrderResponse(BaseModel):
    order_id: str
    order_number: Optional[str] = None
    payment_method: str
    payment_status: PaymentStatus
    subtotal: Decimal
    discount_amount: Decimal
    shipping_fee: Decimal
    total: Decimal
    shipping_address: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    orders: Any
    page: int
    limit: int


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None

    def to_backend(self) -> dict:
        changes = {}
        if self.status is not None:
            changes["status"] = self.status
        if self.payment_status is not None:
            changes["paymentStatus"] = self.payment_status
        return changes

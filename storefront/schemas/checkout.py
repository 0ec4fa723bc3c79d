from pydantic import BaseModel, Field
from decimal import Decimal
from enum import Enum
from typing import Optional

from storefront.core.config import settings


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    VNPAY = "vnpay"

    @property
    def backend_value(self) -> str:
        # The orders API only knows "cash" and "vnpay"
        return "vnpay" if self is PaymentMethod.VNPAY else "cash"


class ShippingAddress(BaseModel):
    name: str = ""
    phone: str = ""
    street: str = ""
    ward: str = ""
    district: str = ""
    city: str = ""
    country: str = Field(default_factory=lambda: settings.DEFAULT_COUNTRY)

    @property
    def full_address(self) -> str:
        parts = ", ".join(part for part in (self.street, self.ward, self.district, self.city) if part)
        if self.country:
            return f"{parts}, {self.country}"
        return parts

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "street": self.street,
            "ward": self.ward,
            "district": self.district,
            "city": self.city,
            "country": self.country or settings.DEFAULT_COUNTRY,
            "fullAddress": self.full_address,
        }


class AddressSubmit(BaseModel):
    address: ShippingAddress
    notes: Optional[str] = None


class PlaceOrderRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER


class OrderSummary(BaseModel):
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    item_count: int


class PlacementResult(BaseModel):
    order_id: str
    order_number: Optional[str] = None
    payment_method: PaymentMethod
    total: Decimal
    payment_url: Optional[str] = None

    @property
    def requires_redirect(self) -> bool:
        return self.payment_url is not None


class PaymentReconciliation(BaseModel):
    order_id: str
    order_number: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    paid: bool = False


class CheckoutStateResponse(BaseModel):
    state: str
    address: Optional[ShippingAddress] = None
    notes: str = ""
    summary: OrderSummary
    next_step: Optional[str] = None

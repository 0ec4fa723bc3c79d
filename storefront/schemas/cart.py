from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.schemas.product import Product


class CartLineItem(BaseModel):
    product: Product
    quantity: int = Field(..., ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.product.unit_price * self.quantity


class CartItemAdd(BaseModel):
    # Raw catalog payload; normalized through Product.from_catalog
    product: Dict[str, Any]
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    product_id: str
    quantity: int


class CartLineResponse(BaseModel):
    product_id: str
    name: str
    images: List[str]
    listed_price: Decimal
    discount_percent: Decimal
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class CartResponse(BaseModel):
    items: List[CartLineResponse]
    total: Decimal
    count: int
    is_cart_panel_open: bool = False
    error: Optional[str] = None

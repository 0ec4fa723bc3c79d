from fastapi import APIRouter, Depends
import logging

from storefront.api.dependencies import get_cart
from storefront.schemas.cart import CartItemAdd, CartItemUpdate, CartResponse
from storefront.services.cart import CartStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart_contents(cart: CartStore = Depends(get_cart)):
    """Get current shopping cart."""
    return cart.to_response()


@router.post("/add", response_model=CartResponse)
async def add_to_cart(item: CartItemAdd, cart: CartStore = Depends(get_cart)):
    """Add item to cart. A product without an id is skipped, not rejected."""
    if not cart.add_item(item.product, item.quantity):
        return cart.to_response(error="Không thể thêm sản phẩm vào giỏ hàng")
    return cart.to_response()


@router.put("/update", response_model=CartResponse)
async def update_cart_item(item: CartItemUpdate, cart: CartStore = Depends(get_cart)):
    """Update cart item quantity; zero or less removes the line."""
    cart.update_quantity(item.product_id, item.quantity)
    return cart.to_response()


@router.delete("/remove/{product_id}", response_model=CartResponse)
async def remove_from_cart(product_id: str, cart: CartStore = Depends(get_cart)):
    """Remove item from cart."""
    cart.remove_item(product_id)
    return cart.to_response()


@router.post("/clear", response_model=CartResponse)
async def clear_cart(cart: CartStore = Depends(get_cart)):
    """Clear entire cart."""
    cart.clear()
    return cart.to_response()

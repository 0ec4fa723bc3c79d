import json
import logging
from decimal import Decimal
from typing import Any, List, Union

from pydantic import ValidationError

from storefront.core.storage import CART_KEY, Storage, read_json, write_json
from storefront.schemas.cart import CartLineItem, CartLineResponse, CartResponse
from storefront.schemas.product import Product
from storefront.services import pricing

logger = logging.getLogger(__name__)


# Stored rows are [product_id, quantity, listed_price, discount_percent, name].
# The whole cart rides in the session cookie, so images stay out and names are
# shortened until the rows fit STORAGE_BUDGET bytes of ASCII-escaped JSON.
NAME_LIMIT = 60
STORAGE_BUDGET = 1600


def _escaped_size(rows: list) -> int:
    # The session cookie escapes every non-ASCII character
    return len(json.dumps(rows, separators=(",", ":")))


def _compact(value: Decimal) -> Union[int, str]:
    return int(value) if value == value.to_integral_value() else str(value)


def _row(item: CartLineItem, name_limit: int = NAME_LIMIT) -> list:
    product = item.product
    return [
        product.product_id,
        item.quantity,
        _compact(product.listed_price),
        _compact(product.discount_percent),
        product.name[:name_limit],
    ]


def _parse_entry(entry: Any) -> CartLineItem:
    """Read a stored row, or the older {product, quantity} object."""
    if isinstance(entry, list) and len(entry) == 5:
        product_id, quantity, listed_price, discount, name = entry
        product = Product.from_catalog({
            "_id": product_id,
            "listedPrice": listed_price,
            "discountPercent": discount,
            "name": name,
        })
    elif isinstance(entry, dict) and isinstance(entry.get("product"), dict):
        product = Product.from_catalog(entry["product"])
        quantity = entry.get("quantity")
    else:
        raise ValueError(f"unrecognized cart entry {entry!r}")
    return CartLineItem(product=product, quantity=quantity)


def _same_id(a: Any, b: Any) -> bool:
    # Ids arrive as ints, ObjectId strings or plain strings depending on the view
    return str(a) == str(b)


class CartStore:
    """
    Shopping cart mirrored to the shopper's client-side storage.

    Every mutation is written back immediately. The panel flag is transient
    and never persisted.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self.is_cart_panel_open = False
        self._items: List[CartLineItem] = []
        self.load()

    def load(self) -> None:
        """Read the saved cart; missing or malformed data yields an empty cart."""
        saved = read_json(self.storage, CART_KEY)
        if saved is None:
            self._items = []
            return
        if not isinstance(saved, list):
            logger.error(f"Error loading cart: expected a list, got {type(saved).__name__}")
            self._items = []
            return

        items = []
        for entry in saved:
            try:
                item = _parse_entry(entry)
            except (TypeError, ValueError, ValidationError) as e:
                logger.error(f"Dropping unreadable cart entry: {str(e)}")
                continue
            if any(_same_id(existing.product.product_id, item.product.product_id) for existing in items):
                logger.error(f"Dropping duplicate cart entry for product {item.product.product_id}")
                continue
            items.append(item)
        self._items = items

    def persist(self) -> None:
        name_limit = NAME_LIMIT
        rows = [_row(item, name_limit) for item in self._items]
        while name_limit > 0 and _escaped_size(rows) > STORAGE_BUDGET:
            name_limit = name_limit * 2 // 3
            rows = [_row(item, name_limit) for item in self._items]
        write_json(self.storage, CART_KEY, rows)

    @property
    def items(self) -> List[CartLineItem]:
        return list(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def _find(self, product_id: Any) -> Union[CartLineItem, None]:
        return next((item for item in self._items if _same_id(item.product.product_id, product_id)), None)

    def add_item(self, product: Union[Product, dict], quantity: int = 1) -> bool:
        """Add ``quantity`` units; re-adding a product increments its line."""
        if not isinstance(product, Product):
            try:
                product = Product.from_catalog(product)
            except (ValueError, ValidationError) as e:
                logger.error(f"Cannot add to cart: {str(e)}")
                return False

        if quantity < 1:
            logger.error(f"Cannot add {quantity} units of product {product.product_id} to cart")
            return False

        existing = self._find(product.product_id)
        if existing:
            existing.quantity += quantity
        else:
            self._items.append(CartLineItem(product=product, quantity=quantity))

        self.persist()
        self.is_cart_panel_open = True
        logger.info(f"Added to cart: product_id={product.product_id}, quantity={quantity}")
        return True

    def update_quantity(self, product_id: Any, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id)
            return

        item = self._find(product_id)
        if not item:
            return

        item.quantity = quantity
        self.persist()
        logger.info(f"Updated cart item: product_id={product_id}, quantity={quantity}")

    def remove_item(self, product_id: Any) -> None:
        remaining = [item for item in self._items if not _same_id(item.product.product_id, product_id)]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        self.persist()
        logger.info(f"Removed from cart: product_id={product_id}")

    def clear(self) -> None:
        self._items = []
        self.persist()
        logger.info("Cart cleared")

    def close_panel(self) -> None:
        self.is_cart_panel_open = False

    def get_total(self) -> Decimal:
        return pricing.subtotal((item.product.unit_price, item.quantity) for item in self._items)

    def get_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def to_response(self, error: str = None) -> CartResponse:
        return CartResponse(
            items=[
                CartLineResponse(
                    product_id=item.product.product_id,
                    name=item.product.name,
                    images=item.product.images,
                    listed_price=item.product.listed_price,
                    discount_percent=item.product.discount_percent,
                    unit_price=item.product.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total
                )
                for item in self._items
            ],
            total=self.get_total(),
            count=self.get_count(),
            is_cart_panel_open=self.is_cart_panel_open,
            error=error
        )

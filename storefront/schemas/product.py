from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Any, List, Optional

from storefront.services import pricing


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return None


class Product(BaseModel):
    """
    Normalized catalog item.

    The catalog answers with several shapes (``_id`` or ``id``, ``listedPrice``
    or a legacy ``price``); ``from_catalog`` maps them all onto this model so
    the cart and checkout never branch on shape.
    """
    product_id: str
    name: str = ""
    images: List[str] = []
    listed_price: Decimal = Decimal("0")
    discount_percent: Decimal = Decimal("0")
    unit: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("discount_percent")
    @classmethod
    def check_discount(cls, value: Decimal) -> Decimal:
        if value < 0 or value > 100:
            raise ValueError("discount_percent must be between 0 and 100")
        return value

    @field_validator("listed_price")
    @classmethod
    def check_price(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("listed_price must not be negative")
        return value

    @property
    def unit_price(self) -> Decimal:
        return pricing.unit_price(self.listed_price, self.discount_percent)

    @classmethod
    def from_catalog(cls, raw: dict) -> "Product":
        """Build a Product from a catalog payload, whatever id and price keys it uses."""
        if not isinstance(raw, dict):
            raise ValueError(f"Product payload must be an object, got {type(raw).__name__}")

        product_id = next(
            (raw[key] for key in ("productId", "product_id", "_id", "id") if raw.get(key) is not None),
            None
        )
        if product_id is None or str(product_id) == "":
            raise ValueError("Product must have _id or id")

        listed_price = _as_decimal(raw.get("listedPrice", raw.get("listed_price")))
        discount = _as_decimal(raw.get("discountPercent", raw.get("discount_percent")))

        if listed_price is None:
            # Older payloads carry a precomputed price/originalPrice pair
            original = _as_decimal(raw.get("originalPrice"))
            price = _as_decimal(raw.get("price"))
            if original is not None and price is not None and original > 0 and discount is None:
                listed_price = original
                discount = (original - price) / original * 100
            else:
                listed_price = price if price is not None else original

        images = raw.get("images") or []
        if isinstance(images, str):
            images = [images]

        return cls(
            product_id=product_id,
            name=raw.get("name") or raw.get("title") or "",
            images=[str(image) for image in images],
            listed_price=listed_price if listed_price is not None else Decimal("0"),
            discount_percent=discount if discount is not None else Decimal("0"),
            unit=raw.get("unit")
        )


def _catalog_id(raw: Any, kind: str) -> str:
    if not isinstance(raw, dict):
        raise ValueError(f"{kind} payload must be an object, got {type(raw).__name__}")
    value = next((raw[key] for key in ("_id", "id") if raw.get(key) is not None), None)
    if value is None or str(value) == "":
        raise ValueError(f"{kind} must have _id or id")
    return str(value)


class Category(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None

    @classmethod
    def from_catalog(cls, raw: dict) -> "Category":
        return cls(id=_catalog_id(raw, "Category"), name=raw.get("name") or "", slug=raw.get("slug"))


class Review(BaseModel):
    id: str
    rating: int = Field(0, ge=0, le=5)
    comment: str = ""
    author: Optional[str] = None

    @classmethod
    def from_catalog(cls, raw: dict) -> "Review":
        review_id = _catalog_id(raw, "Review")
        user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
        return cls(
            id=review_id,
            rating=raw.get("rating") or 0,
            comment=raw.get("comment") or raw.get("content") or "",
            author=user.get("fullName") or user.get("name")
        )


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    title: str = ""
    content: str = ""
    images: List[str] = []

    def to_backend(self, product_id: str) -> dict:
        return {
            "target_type": "product",
            "target_id": product_id,
            "rating": self.rating,
            "title": self.title.strip(),
            "content": self.content.strip(),
            "images": self.images,
        }


class Post(BaseModel):
    id: str
    title: str
    excerpt: Optional[str] = None
    content: Optional[str] = None
    thumbnail: Optional[str] = None

    @classmethod
    def from_catalog(cls, raw: dict) -> "Post":
        return cls(
            id=_catalog_id(raw, "Post"),
            title=raw.get("title") or "",
            excerpt=raw.get("excerpt") or raw.get("summary"),
            content=raw.get("content"),
            thumbnail=raw.get("thumbnail") or raw.get("coverImage") or raw.get("image")
        )


class ProductResponse(BaseModel):
    product_id: str
    name: str
    images: List[str]
    listed_price: Decimal
    discount_percent: Decimal
    unit_price: Decimal
    unit: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(unit_price=product.unit_price, **product.model_dump())

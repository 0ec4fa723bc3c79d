from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ProductUnit(str, Enum):
    KG = "kg"
    TON = "tấn"
    QUINTAL = "tạ"
    TEN_KG = "yến"


class PublishType(str, Enum):
    NOW = "now"
    SCHEDULED = "scheduled"


class BackendWrite(BaseModel):
    """Fields left unset are not sent, so the backend keeps its own defaults."""

    def to_backend(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class ProductUpdate(BackendWrite):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    listed_price: Optional[int] = Field(None, ge=0, serialization_alias="listedPrice")
    discount_percent: Optional[float] = Field(None, ge=0, le=100, serialization_alias="discountPercent")
    description: Optional[str] = None
    images: Optional[List[str]] = None
    initial_quantity: Optional[int] = Field(None, ge=0, serialization_alias="initialQuantity")
    remaining_quantity: Optional[int] = Field(None, ge=0, serialization_alias="remainingQuantity")
    unit: Optional[ProductUnit] = None
    allow_comments: Optional[bool] = Field(None, serialization_alias="allowComments")


class ProductCreate(ProductUpdate):
    product_id: str = Field(..., min_length=1, serialization_alias="productId")
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    listed_price: int = Field(..., ge=0, serialization_alias="listedPrice")


class CategoryUpdate(BackendWrite):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    parent_category: Optional[str] = Field(None, serialization_alias="parentCategory")


class CategoryCreate(CategoryUpdate):
    name: str = Field(..., min_length=1)


class PostUpdate(BackendWrite):
    title: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    cover_image: Optional[str] = Field(None, serialization_alias="coverImage")
    description: Optional[str] = Field(None, max_length=1000)
    publish_type: Optional[PublishType] = Field(None, serialization_alias="publishType")
    scheduled_date: Optional[datetime] = Field(None, serialization_alias="scheduledDate")
    audience: Optional[str] = None
    status: Optional[str] = None

    @model_validator(mode="after")
    def check_schedule(self):
        if self.publish_type is PublishType.SCHEDULED and self.scheduled_date is None:
            raise ValueError("scheduled_date is required for scheduled posts")
        return self


class PostCreate(PostUpdate):
    title: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)


class AdminListResponse(BaseModel):
    items: list
    page: int
    limit: int

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from typing import Any, Callable, List, Optional
import logging

from storefront.api.dependencies import get_customer_token
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.errors import BackendError, SessionExpiredError
from storefront.schemas.product import Category, Post, Product, ProductResponse, Review, ReviewCreate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/catalog", tags=["catalog"])


def as_list(data: Any, key: str) -> list:
    if isinstance(data, dict):
        return data.get(key) or []
    return data or []


def _backend_exception(e: BackendError) -> HTTPException:
    return HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)


def readable(raw_items: list, parse: Callable[[dict], Any], kind: str) -> list:
    """Parse each backend item, leaving out the ones that do not validate."""
    items = []
    for raw in raw_items:
        try:
            items.append(parse(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Skipping unreadable {kind}: {str(e)}")
    return items


def to_product_responses(raw_products: list) -> List[ProductResponse]:
    products = []
    for raw in raw_products:
        try:
            products.append(ProductResponse.from_product(Product.from_catalog(raw)))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Skipping unreadable catalog product: {str(e)}")
    return products


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    client: BackendClient = Depends(get_backend_client)
):
    params = {"page": page, "limit": limit}
    if category:
        params["category"] = category
    if search and search.strip():
        params["search"] = search.strip()

    try:
        data = await client.list_products(params)
    except BackendError as e:
        raise _backend_exception(e)
    return to_product_responses(as_list(data, "products"))


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, client: BackendClient = Depends(get_backend_client)):
    try:
        raw = await client.get_product(product_id)
        return ProductResponse.from_product(Product.from_catalog(raw or {}))
    except BackendError as e:
        raise _backend_exception(e)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=404, detail="Product not found")


@router.get("/products/{product_id}/reviews", response_model=List[Review])
async def list_product_reviews(product_id: str, client: BackendClient = Depends(get_backend_client)):
    try:
        data = await client.list_reviews(product_id)
    except BackendError as e:
        raise _backend_exception(e)
    return readable(as_list(data, "reviews"), Review.from_catalog, "review")


@router.post("/products/{product_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_product_review(
    product_id: str,
    review: ReviewCreate,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    """Post a review; the backend only accepts it from customers who bought the product."""
    try:
        return await client.create_review(review.to_backend(product_id), token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.get("/categories", response_model=List[Category])
async def list_categories(client: BackendClient = Depends(get_backend_client)):
    try:
        data = await client.list_categories()
    except BackendError as e:
        raise _backend_exception(e)
    return readable(as_list(data, "categories"), Category.from_catalog, "category")


@router.get("/posts", response_model=List[Post])
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        data = await client.list_posts({"page": page, "limit": limit})
    except BackendError as e:
        raise _backend_exception(e)
    return readable(as_list(data, "posts"), Post.from_catalog, "post")


@router.get("/posts/{post_id}", response_model=Post)
async def get_post(post_id: str, client: BackendClient = Depends(get_backend_client)):
    try:
        return Post.from_catalog(await client.get_post(post_id) or {})
    except BackendError as e:
        raise _backend_exception(e)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=404, detail="Post not found")

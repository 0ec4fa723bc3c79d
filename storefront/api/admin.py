from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional
import logging

from storefront.api.catalog import as_list
from storefront.api.dependencies import get_admin_token
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.errors import BackendError, SessionExpiredError
from storefront.schemas.admin import (
    AdminListResponse,
    CategoryCreate,
    CategoryUpdate,
    PostCreate,
    PostUpdate,
    ProductCreate,
    ProductUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


def _backend_exception(e: BackendError) -> HTTPException:
    return HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)


def _changes(update) -> dict:
    changes = update.to_backend()
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    return changes


# Products

@router.get("/products", response_model=AdminListResponse)
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    approved: Optional[bool] = None,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    """All products, including seller submissions waiting for approval."""
    params = {"page": page, "limit": limit}
    if search and search.strip():
        params["search"] = search.strip()
    if approved is not None:
        params["is_approved"] = str(approved).lower()

    try:
        data = await client.list_admin_products(token, params)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

    return AdminListResponse(items=as_list(data, "products"), page=page, limit=limit)


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.get_admin_product(product_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.create_product(product.to_backend(), token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    update: ProductUpdate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    changes = _changes(update)
    try:
        return await client.update_product(product_id, changes, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        await client.delete_product(product_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)
    return {"message": "Product deleted", "id": product_id}


@router.put("/products/{product_id}/approve")
async def approve_product(
    product_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.review_product(product_id, True, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.put("/products/{product_id}/reject")
async def reject_product(
    product_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.review_product(product_id, False, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


# Categories (listing is public, see /api/catalog/categories)

@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    category: CategoryCreate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.create_category(category.to_backend(), token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    update: CategoryUpdate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    changes = _changes(update)
    try:
        return await client.update_category(category_id, changes, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        await client.delete_category(category_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)
    return {"message": "Category deleted", "id": category_id}


# Posts

@router.get("/posts", response_model=AdminListResponse)
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    post_status: Optional[str] = Query(None, alias="status"),
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    params = {"page": page, "limit": limit}
    if post_status:
        params["status"] = post_status

    try:
        data = await client.list_admin_posts(token, params)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

    return AdminListResponse(items=as_list(data, "posts"), page=page, limit=limit)


@router.get("/posts/{post_id}")
async def get_post(
    post_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.get_admin_post(post_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    post: PostCreate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.create_post(post.to_backend(), token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.put("/posts/{post_id}")
async def update_post(
    post_id: str,
    update: PostUpdate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    changes = _changes(update)
    try:
        return await client.update_post(post_id, changes, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.delete("/posts/{post_id}")
async def delete_post(
    post_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        await client.delete_post(post_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)
    return {"message": "Post deleted", "id": post_id}

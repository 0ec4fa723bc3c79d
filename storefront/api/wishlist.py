from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import Optional
import logging

from storefront.api.dependencies import get_customer_token
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.errors import BackendError, SessionExpiredError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class WishlistAdd(BaseModel):
    product_id: str
    note: Optional[str] = None


def _backend_exception(e: BackendError) -> HTTPException:
    return HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)


@router.get("")
async def list_wishlist(
    group_id: Optional[str] = None,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    params = {"group_id": group_id} if group_id else {}
    try:
        return await client.list_wishlist(token, params)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(
    item: WishlistAdd,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.add_to_wishlist(item.product_id, token, item.note)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.delete("/{item_id}")
async def remove_from_wishlist(
    item_id: str,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.remove_from_wishlist(item_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@router.post("/clear")
async def clear_wishlist(
    group_id: Optional[str] = None,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.clear_wishlist(token, group_id)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

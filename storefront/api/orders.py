from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from storefront.api.dependencies import get_admin_token, get_auth_sessions, get_customer_token
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.errors import BackendError, SessionExpiredError
from storefront.db.session import get_db
from storefront.schemas.order import OrderListResponse, OrderStatusUpdate, PlacedOrderResponse
from storefront.services.auth import AuthSessions
from storefront.services.orders import get_placed_order, list_placed_orders

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])
admin_router = APIRouter(prefix="/api/admin/orders", tags=["admin"])


def _backend_exception(e: BackendError) -> HTTPException:
    return HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    """List orders for the signed-in customer."""
    try:
        orders = await client.list_customer_orders(token, {"page": page, "limit": limit})
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

    return OrderListResponse(orders=orders or [], page=page, limit=limit)


@router.get("/placed", response_model=List[PlacedOrderResponse])
async def list_local_orders(
    token: str = Depends(get_customer_token),
    sessions: AuthSessions = Depends(get_auth_sessions),
    db: AsyncSession = Depends(get_db)
):
    """Orders placed through this storefront, newest first."""
    customer = sessions.customer or {}
    if not customer.get("email"):
        return []
    return await list_placed_orders(db, customer["email"])


@router.get("/placed/{order_id}", response_model=PlacedOrderResponse)
async def get_local_order(
    order_id: str,
    token: str = Depends(get_customer_token),
    db: AsyncSession = Depends(get_db)
):
    placed = await get_placed_order(db, order_id)
    if not placed:
        raise HTTPException(status_code=404, detail="Order not found")
    return placed


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    token: str = Depends(get_customer_token),
    client: BackendClient = Depends(get_backend_client)
):
    """Get single order detail."""
    try:
        return await client.get_customer_order(order_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@admin_router.get("", response_model=OrderListResponse)
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    order_status: str = Query(None, alias="status"),
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    params = {"page": page, "limit": limit}
    if order_status:
        params["status"] = order_status

    try:
        orders = await client.list_orders(token, params)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

    return OrderListResponse(orders=orders or [], page=page, limit=limit)


@admin_router.get("/{order_id}")
async def admin_get_order(
    order_id: str,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        return await client.get_order(order_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)


@admin_router.put("/{order_id}")
async def admin_update_order(
    order_id: str,
    update: OrderStatusUpdate,
    token: str = Depends(get_admin_token),
    client: BackendClient = Depends(get_backend_client)
):
    """Move an order to another status (confirm, ship, cancel, mark paid)."""
    changes = update.to_backend()
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        return await client.update_order(order_id, changes, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise _backend_exception(e)

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.models import PaymentStatus, PlacedOrder
from storefront.schemas.checkout import OrderSummary, PaymentMethod, PlacementResult, ShippingAddress

logger = logging.getLogger(__name__)


async def record_placed_order(
    db: AsyncSession,
    result: PlacementResult,
    summary: OrderSummary,
    address: Optional[ShippingAddress] = None,
    customer_email: Optional[str] = None,
    checkout_id: Optional[str] = None
) -> Optional[PlacedOrder]:
    """
    Remember an accepted order locally. The backend already has the order, so
    a failure here is logged and never undoes the checkout.
    """
    try:
        existing = await get_placed_order(db, result.order_id)
        if existing:
            return existing

        status = PaymentStatus.PENDING if result.payment_method is PaymentMethod.VNPAY else PaymentStatus.UNPAID
        placed = PlacedOrder(
            order_id=result.order_id,
            order_number=result.order_number,
            checkout_id=checkout_id,
            customer_email=customer_email,
            payment_method=result.payment_method.backend_value,
            payment_status=status,
            subtotal=summary.subtotal,
            discount_amount=summary.discount,
            shipping_fee=summary.shipping_fee,
            total=summary.total,
            shipping_address=address.full_address if address else None
        )
        db.add(placed)
        await db.commit()
        await db.refresh(placed)
        logger.info(f"Order saved locally: id={placed.id}, order_id={result.order_id}")
        return placed
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to save order {result.order_id} locally: {str(e)}")
        return None


async def get_placed_order(db: AsyncSession, order_id: str) -> Optional[PlacedOrder]:
    result = await db.execute(select(PlacedOrder).where(PlacedOrder.order_id == str(order_id)))
    return result.scalar_one_or_none()


async def mark_payment_status(db: AsyncSession, order_id: str, status: PaymentStatus) -> Optional[PlacedOrder]:
    try:
        placed = await get_placed_order(db, order_id)
        if not placed:
            logger.warning(f"No local record for order {order_id}, payment status {status.value} not saved")
            return None

        placed.payment_status = status
        await db.commit()
        await db.refresh(placed)
        logger.info(f"Order {order_id} payment status set to {status.value}")
        return placed
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to update payment status for order {order_id}: {str(e)}")
        return None


async def list_placed_orders(db: AsyncSession, customer_email: str, limit: int = 20) -> list:
    result = await db.execute(
        select(PlacedOrder)
        .where(PlacedOrder.customer_email == customer_email)
        .order_by(PlacedOrder.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())

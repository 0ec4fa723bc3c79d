from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from storefront.api.dependencies import get_auth_sessions, get_customer_token, get_sequencer
from storefront.core.errors import (
    BackendError,
    CheckoutGuardError,
    CheckoutValidationError,
    DuplicateSubmissionError,
    SessionExpiredError,
)
from storefront.db.models import PaymentStatus
from storefront.db.session import get_db
from storefront.schemas.checkout import (
    AddressSubmit,
    CheckoutStateResponse,
    PaymentReconciliation,
    PlaceOrderRequest,
    PlacementResult,
)
from storefront.services.auth import AuthSessions
from storefront.services.checkout import CheckoutSequencer, CheckoutStep
from storefront.services.orders import mark_payment_status, record_placed_order

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/checkout", tags=["checkout"])


def _guard_exception(e: CheckoutGuardError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": e.message, "redirect_to": e.redirect_to}
    )


def _state_response(sequencer: CheckoutSequencer, next_step: CheckoutStep = None) -> CheckoutStateResponse:
    return CheckoutStateResponse(
        state=sequencer.state.value,
        address=sequencer.drafts.selected_address,
        notes=sequencer.drafts.notes,
        summary=sequencer.summary(),
        next_step=next_step.path if next_step else None
    )


@router.get("/state", response_model=CheckoutStateResponse)
async def get_checkout_state(sequencer: CheckoutSequencer = Depends(get_sequencer)):
    return _state_response(sequencer)


@router.post("/address", response_model=CheckoutStateResponse)
async def submit_address(
    data: AddressSubmit,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    token: str = Depends(get_customer_token)
):
    """Save the shipping address and notes, then move on to review."""
    try:
        next_step = sequencer.submit_address(data.address, data.notes)
    except CheckoutGuardError as e:
        raise _guard_exception(e)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return _state_response(sequencer, next_step)


@router.get("/review", response_model=CheckoutStateResponse)
async def review_order(
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    token: str = Depends(get_customer_token)
):
    try:
        sequencer.require(CheckoutStep.REVIEW)
    except CheckoutGuardError as e:
        raise _guard_exception(e)
    return _state_response(sequencer)


@router.post("/review/confirm", response_model=CheckoutStateResponse)
async def confirm_review(
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    token: str = Depends(get_customer_token)
):
    try:
        next_step = sequencer.confirm_review()
    except CheckoutGuardError as e:
        raise _guard_exception(e)
    return _state_response(sequencer, next_step)


@router.post("/place-order", response_model=PlacementResult, status_code=201)
async def place_order(
    data: PlaceOrderRequest,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions),
    token: str = Depends(get_customer_token),
    db: AsyncSession = Depends(get_db)
):
    """
    Create the order on the backend.
    1. Check cart and address are present
    2. Send order (one request per checkout at a time)
    3. Clear cart and draft, or hand back the VNPay URL
    4. Remember the order locally
    """
    summary = sequencer.summary()
    address = sequencer.drafts.selected_address
    checkout_id = sequencer.drafts.checkout_id

    try:
        result = await sequencer.place_order(data.payment_method, token)
    except CheckoutGuardError as e:
        raise _guard_exception(e)
    except CheckoutValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except DuplicateSubmissionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)

    customer = sessions.customer or {}
    await record_placed_order(db, result, summary, address, customer.get("email"), checkout_id)
    return result


@router.get("/vnpay/reconcile/{order_id}", response_model=PaymentReconciliation)
async def reconcile_vnpay(
    order_id: str,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    token: str = Depends(get_customer_token),
    db: AsyncSession = Depends(get_db)
):
    """Check a VNPay order after the shopper returns from the payment page."""
    try:
        result = await sequencer.reconcile_payment(order_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        raise HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)

    if result.paid:
        await mark_payment_status(db, order_id, PaymentStatus.PAID)
    return result

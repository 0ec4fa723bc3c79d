"""
Three-step checkout: address -> review -> payment -> confirmation.

Each step is its own page, so everything the later steps need is kept in the
shopper's client-side storage. Entering a step whose prerequisites are missing
sends the shopper back to the step that provides them; nothing is reset.
"""
import asyncio
import hashlib
import json
import logging
import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from enum import Enum
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from storefront.core.backend_client import BackendClient
from storefront.core.config import settings
from storefront.core.errors import (
    BackendError,
    CheckoutGuardError,
    CheckoutValidationError,
    DuplicateSubmissionError,
)
from storefront.core.storage import (
    CHECKOUT_ADDRESS_KEY,
    CHECKOUT_ID_KEY,
    CHECKOUT_KEYS,
    CHECKOUT_NOTES_KEY,
    CHECKOUT_PAYMENT_METHOD_KEY,
    CHECKOUT_REVIEWED_KEY,
    VNPAY_FINGERPRINT_KEY,
    VNPAY_ORDER_KEY,
    Storage,
    read_json,
    remove_keys,
    write_json,
)
from storefront.schemas.checkout import (
    OrderSummary,
    PaymentMethod,
    PaymentReconciliation,
    PlacementResult,
    ShippingAddress,
)
from storefront.services import pricing
from storefront.services.cart import CartStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Vui lòng điền đầy đủ thông tin bắt buộc (Họ tên, Số điện thoại, Địa chỉ)"
ORDER_FAILED_MESSAGE = "Đặt hàng thất bại, vui lòng thử lại"


class CheckoutStep(str, Enum):
    CART = "cart"
    ADDRESS = "address"
    REVIEW = "review"
    PAYMENT = "payment"
    SUCCESS = "success"

    @property
    def path(self) -> str:
        return STEP_PATHS[self]


STEP_PATHS = {
    CheckoutStep.CART: "/gio-hang",
    CheckoutStep.ADDRESS: "/dia-chi-giao-hang",
    CheckoutStep.REVIEW: "/duyet-lai-don-hang",
    CheckoutStep.PAYMENT: "/phuong-thuc-thanh-toan",
    CheckoutStep.SUCCESS: "/don-hang-thanh-cong",
}


class CheckoutState(str, Enum):
    NO_ADDRESS = "no_address"
    ADDRESS_SELECTED = "address_selected"
    REVIEWED = "reviewed"
    PAYMENT_CHOSEN = "payment_chosen"
    ORDER_PLACED = "order_placed"


class InFlightGuard:
    """Allows one outstanding order-creation request per checkout."""

    def __init__(self):
        self._keys = set()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self._lock:
            if key in self._keys:
                logger.warning(f"Rejected duplicate order submission for checkout {key}")
                raise DuplicateSubmissionError()
            self._keys.add(key)
        try:
            yield
        finally:
            async with self._lock:
                self._keys.discard(key)

    def is_held(self, key: str) -> bool:
        return key in self._keys


in_flight_orders = InFlightGuard()


class CheckoutDraftStore:
    """Address and notes written by the address step, read by the later ones."""

    def __init__(self, storage: Storage):
        self.storage = storage

    @property
    def selected_address(self) -> Optional[ShippingAddress]:
        saved = read_json(self.storage, CHECKOUT_ADDRESS_KEY)
        if saved is None:
            return None
        try:
            return ShippingAddress.model_validate(saved)
        except ValidationError as e:
            logger.error(f"Error loading checkout address: {str(e)}")
            return None

    @property
    def notes(self) -> str:
        return self.storage.get(CHECKOUT_NOTES_KEY) or ""

    @property
    def checkout_id(self) -> Optional[str]:
        return self.storage.get(CHECKOUT_ID_KEY)

    @property
    def reviewed(self) -> bool:
        return bool(self.storage.get(CHECKOUT_REVIEWED_KEY))

    @property
    def payment_method(self) -> Optional[PaymentMethod]:
        value = self.storage.get(CHECKOUT_PAYMENT_METHOD_KEY)
        try:
            return PaymentMethod(value) if value else None
        except ValueError:
            return None

    @property
    def pending_order_id(self) -> Optional[str]:
        return self.storage.get(VNPAY_ORDER_KEY)

    @property
    def pending_order_fingerprint(self) -> Optional[str]:
        return self.storage.get(VNPAY_FINGERPRINT_KEY)

    def save(self, address: ShippingAddress, notes: Optional[str] = None) -> None:
        write_json(self.storage, CHECKOUT_ADDRESS_KEY, address.model_dump())
        if notes is not None:
            self.set_notes(notes)
        # A new address has to be reviewed again and needs its own order
        remove_keys(self.storage, CHECKOUT_REVIEWED_KEY)
        self.clear_pending_order()
        self.ensure_checkout_id()

    def set_notes(self, notes: str) -> None:
        self.storage[CHECKOUT_NOTES_KEY] = notes

    def ensure_checkout_id(self) -> str:
        if not self.checkout_id:
            self.storage[CHECKOUT_ID_KEY] = uuid.uuid4().hex
        return self.storage[CHECKOUT_ID_KEY]

    def mark_reviewed(self) -> None:
        self.storage[CHECKOUT_REVIEWED_KEY] = "1"

    def set_payment_method(self, method: PaymentMethod) -> None:
        self.storage[CHECKOUT_PAYMENT_METHOD_KEY] = method.value

    def set_pending_order(self, order_id: str, fingerprint: str) -> None:
        self.storage[VNPAY_ORDER_KEY] = str(order_id)
        self.storage[VNPAY_FINGERPRINT_KEY] = fingerprint

    def clear_pending_order(self) -> None:
        remove_keys(self.storage, VNPAY_ORDER_KEY, VNPAY_FINGERPRINT_KEY)

    def clear(self) -> None:
        remove_keys(self.storage, *CHECKOUT_KEYS)


class CheckoutSequencer:
    def __init__(
        self,
        cart: CartStore,
        drafts: CheckoutDraftStore,
        client: BackendClient,
        in_flight: InFlightGuard = None,
        flat_discount: Decimal = None,
        shipping_fee: Decimal = None,
        vnpay_min_amount: Decimal = None
    ):
        self.cart = cart
        self.drafts = drafts
        self.client = client
        self.in_flight = in_flight or in_flight_orders
        self.flat_discount = settings.ORDER_DISCOUNT_AMOUNT if flat_discount is None else flat_discount
        self.shipping_fee = settings.SHIPPING_FEE if shipping_fee is None else shipping_fee
        self.vnpay_min_amount = settings.VNPAY_MIN_AMOUNT if vnpay_min_amount is None else vnpay_min_amount
        self._placed = False

    @classmethod
    def for_storage(cls, storage: Storage, client: BackendClient, **kwargs) -> "CheckoutSequencer":
        return cls(CartStore(storage), CheckoutDraftStore(storage), client, **kwargs)

    @property
    def state(self) -> CheckoutState:
        if self._placed:
            return CheckoutState.ORDER_PLACED
        if self.drafts.selected_address is None:
            return CheckoutState.NO_ADDRESS
        if self.drafts.payment_method is not None:
            return CheckoutState.PAYMENT_CHOSEN
        if self.drafts.reviewed:
            return CheckoutState.REVIEWED
        return CheckoutState.ADDRESS_SELECTED

    def guard(self, step: CheckoutStep) -> Optional[CheckoutStep]:
        """Step to redirect to when ``step`` cannot be entered yet, else None."""
        if step in (CheckoutStep.ADDRESS, CheckoutStep.REVIEW, CheckoutStep.PAYMENT) and self.cart.is_empty:
            return CheckoutStep.CART
        if step in (CheckoutStep.REVIEW, CheckoutStep.PAYMENT) and self.drafts.selected_address is None:
            return CheckoutStep.ADDRESS
        return None

    def require(self, step: CheckoutStep) -> None:
        redirect = self.guard(step)
        if redirect is not None:
            raise CheckoutGuardError(redirect.path, f"Cannot enter {step.value} step yet")

    def submit_address(self, address: ShippingAddress, notes: Optional[str] = None) -> CheckoutStep:
        self.require(CheckoutStep.ADDRESS)

        if not (address.name.strip() and address.phone.strip() and address.street.strip()):
            raise CheckoutValidationError(REQUIRED_FIELDS_MESSAGE)

        self.drafts.save(address, notes)
        logger.info(f"Checkout address saved for checkout {self.drafts.checkout_id}")
        return CheckoutStep.REVIEW

    def confirm_review(self) -> CheckoutStep:
        self.require(CheckoutStep.REVIEW)
        self.drafts.mark_reviewed()
        return CheckoutStep.PAYMENT

    def summary(self) -> OrderSummary:
        subtotal = self.cart.get_total()
        return OrderSummary(
            subtotal=subtotal,
            discount=pricing.applied_discount(self.flat_discount, subtotal),
            shipping_fee=self.shipping_fee,
            total=pricing.order_total(subtotal, self.flat_discount, self.shipping_fee),
            item_count=self.cart.get_count()
        )

    def build_order_payload(self, method: PaymentMethod) -> dict:
        """Only ids and quantities are sent; the backend re-prices every line."""
        address = self.drafts.selected_address
        if address is None:
            raise CheckoutGuardError(CheckoutStep.ADDRESS.path, "No shipping address selected")

        summary = self.summary()
        return {
            "items": [
                {"product": item.product.product_id, "quantity": item.quantity}
                for item in self.cart.items
            ],
            "shippingAddress": address.to_payload(),
            "paymentMethod": method.backend_value,
            "discountAmount": pricing.to_vnd(summary.discount),
            "shippingFee": pricing.to_vnd(summary.shipping_fee),
            "notes": self.drafts.notes,
        }

    def order_fingerprint(self, method: PaymentMethod) -> str:
        """Digest of what the backend order is built from: lines, address and method."""
        address = self.drafts.selected_address
        content = {
            "items": sorted([str(item.product.product_id), item.quantity] for item in self.cart.items),
            "address": address.to_payload() if address else None,
            "notes": self.drafts.notes,
            "method": method.value,
        }
        encoded = json.dumps(content, sort_keys=True, ensure_ascii=False).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()[:16]

    async def place_order(self, method: PaymentMethod, access_token: str) -> PlacementResult:
        """
        Submit the order. The cart and draft are only cleared after the backend
        accepted it; any failure leaves them untouched for a retry.
        """
        self.require(CheckoutStep.PAYMENT)
        self.drafts.set_payment_method(method)
        summary = self.summary()

        if method is PaymentMethod.VNPAY and summary.total < self.vnpay_min_amount:
            raise CheckoutValidationError(
                "Số tiền đơn hàng quá nhỏ để thanh toán qua VNPAY. "
                f"Tổng tiền tối thiểu là {pricing.format_price(self.vnpay_min_amount, ' VND')}. "
                f"Tổng tiền hiện tại: {pricing.format_price(summary.total, ' VND')}"
            )

        checkout_id = self.drafts.ensure_checkout_id()
        fingerprint = self.order_fingerprint(method)
        async with self.in_flight.hold(checkout_id):
            pending_order_id = self.drafts.pending_order_id
            if (
                method is PaymentMethod.VNPAY
                and pending_order_id
                and self.drafts.pending_order_fingerprint == fingerprint
            ):
                # The order exists already, only the payment link failed last time
                logger.info(f"Reusing pending VNPay order {pending_order_id} for checkout {checkout_id}")
                order_id, order_number = pending_order_id, None
            else:
                if pending_order_id:
                    logger.info(f"Dropping pending order {pending_order_id}, checkout {checkout_id} changed since")
                    self.drafts.clear_pending_order()
                payload = self.build_order_payload(method)
                order = await self.client.create_order(
                    payload,
                    access_token,
                    idempotency_key=f"{checkout_id}-{fingerprint}"
                )
                order_id = order.get("_id") or order.get("id") or order.get("orderId")
                order_number = order.get("orderNumber")
                if not order_id:
                    logger.error(f"Backend order response has no id: {order}")
                    raise BackendError(ORDER_FAILED_MESSAGE)
                order_id = str(order_id)

            if method is PaymentMethod.VNPAY:
                self.drafts.set_pending_order(order_id, fingerprint)
                payment_url = await self.client.create_payment_url(
                    order_id,
                    pricing.to_vnd(summary.total),
                    f"Thanh toan don hang {order_number or order_id}",
                    access_token
                )
                logger.info(f"Redirecting checkout {checkout_id} to VNPay for order {order_id}")
                return PlacementResult(
                    order_id=order_id,
                    order_number=order_number,
                    payment_method=method,
                    total=summary.total,
                    payment_url=payment_url
                )

        self._finish()
        logger.info(f"Order {order_id} placed for checkout {checkout_id}")
        return PlacementResult(
            order_id=order_id,
            order_number=order_number,
            payment_method=method,
            total=summary.total
        )

    async def reconcile_payment(self, order_id: str, access_token: str) -> PaymentReconciliation:
        """Look the order up after the hosted payment page sends the shopper back."""
        status = await self.client.check_payment_status(order_id, access_token) or {}
        result = PaymentReconciliation(
            order_id=str(status.get("orderId") or order_id),
            order_number=status.get("orderNumber"),
            status=status.get("status"),
            payment_status=status.get("paymentStatus"),
            paid=status.get("paymentStatus") == "paid" or status.get("status") == "paid"
        )

        if result.paid:
            self._finish()
            logger.info(f"VNPay payment confirmed for order {order_id}")
        else:
            logger.warning(f"VNPay payment not confirmed for order {order_id}: {status}")
            # A failed payment is not retried against the same order
            if self.drafts.pending_order_id == str(order_id):
                self.drafts.clear_pending_order()
        return result

    def _finish(self) -> None:
        self.cart.clear()
        self.drafts.clear()
        self.drafts.clear_pending_order()
        self._placed = True

from decimal import Decimal

import httpx
import pytest

from storefront.core.errors import (
    BackendError,
    CheckoutGuardError,
    CheckoutValidationError,
    DuplicateSubmissionError,
    SessionExpiredError,
)
from storefront.core.storage import (
    CART_KEY,
    CHECKOUT_ADDRESS_KEY,
    CHECKOUT_KEYS,
    VNPAY_FINGERPRINT_KEY,
    VNPAY_ORDER_KEY,
)
from storefront.schemas.checkout import PaymentMethod, ShippingAddress
from storefront.services.checkout import CheckoutSequencer, CheckoutState, CheckoutStep, InFlightGuard


@pytest.fixture
def sequencer(storage, client):
    return CheckoutSequencer.for_storage(storage, client, in_flight=InFlightGuard())


@pytest.fixture
def address():
    return ShippingAddress(
        name="Nguyễn Văn An",
        phone="0901234567",
        street="12 Lê Lợi",
        ward="Bến Nghé",
        district="Quận 1",
        city="TP. Hồ Chí Minh"
    )


@pytest.fixture
def ready(sequencer, st25, address):
    sequencer.cart.add_item(st25, 2)
    sequencer.submit_address(address, "Giao giờ hành chính")
    sequencer.confirm_review()
    return sequencer


def test_entering_review_with_empty_cart_redirects_to_cart(sequencer, storage):
    assert sequencer.guard(CheckoutStep.REVIEW) is CheckoutStep.CART

    with pytest.raises(CheckoutGuardError) as exc:
        sequencer.require(CheckoutStep.PAYMENT)

    assert exc.value.redirect_to == "/gio-hang"
    assert storage == {}


def test_entering_review_without_address_redirects_to_address(sequencer, st25):
    sequencer.cart.add_item(st25)

    assert sequencer.guard(CheckoutStep.ADDRESS) is None
    assert sequencer.guard(CheckoutStep.REVIEW) is CheckoutStep.ADDRESS
    with pytest.raises(CheckoutGuardError) as exc:
        sequencer.confirm_review()
    assert exc.value.redirect_to == "/dia-chi-giao-hang"


def test_submit_address_requires_name_phone_street(sequencer, st25, address, storage):
    sequencer.cart.add_item(st25)
    address.phone = "  "

    with pytest.raises(CheckoutValidationError):
        sequencer.submit_address(address)

    assert CHECKOUT_ADDRESS_KEY not in storage
    assert sequencer.state is CheckoutState.NO_ADDRESS


def test_submit_address_moves_to_review(sequencer, st25, address):
    sequencer.cart.add_item(st25)

    next_step = sequencer.submit_address(address, "Gọi trước khi giao")

    assert next_step is CheckoutStep.REVIEW
    assert sequencer.state is CheckoutState.ADDRESS_SELECTED
    assert sequencer.drafts.selected_address.full_address == (
        "12 Lê Lợi, Bến Nghé, Quận 1, TP. Hồ Chí Minh, Việt Nam"
    )
    assert sequencer.drafts.notes == "Gọi trước khi giao"
    assert sequencer.drafts.checkout_id


def test_new_address_requires_review_again(ready, address):
    assert ready.state is CheckoutState.REVIEWED

    ready.submit_address(address)

    assert ready.state is CheckoutState.ADDRESS_SELECTED


def test_summary(ready):
    summary = ready.summary()

    assert summary.subtotal == Decimal("400000")
    assert summary.discount == Decimal("50000")
    assert summary.shipping_fee == Decimal("30000")
    assert summary.total == Decimal("380000")
    assert summary.item_count == 2


@pytest.mark.asyncio
async def test_place_order_sends_ids_and_clears_state(ready, backend, storage):
    backend.on("POST", "/customer/orders", status_code=201, json={
        "success": True,
        "data": {"_id": "o1", "orderNumber": "DH0001", "status": "pending"}
    })
    checkout_id = ready.drafts.checkout_id
    fingerprint = ready.order_fingerprint(PaymentMethod.BANK_TRANSFER)

    result = await ready.place_order(PaymentMethod.BANK_TRANSFER, "tok")

    assert result.order_id == "o1"
    assert result.order_number == "DH0001"
    assert result.total == Decimal("380000")
    assert not result.requires_redirect
    assert ready.state is CheckoutState.ORDER_PLACED
    assert ready.cart.is_empty
    assert all(key not in storage for key in CHECKOUT_KEYS)

    request = backend.calls("POST", "/customer/orders")[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["Idempotency-Key"] == f"{checkout_id}-{fingerprint}"
    payload = backend.body(request)
    assert payload["items"] == [{"product": "A", "quantity": 2}]
    assert payload["paymentMethod"] == "cash"
    assert payload["discountAmount"] == 50000
    assert payload["shippingFee"] == 30000
    assert payload["notes"] == "Giao giờ hành chính"
    assert payload["shippingAddress"]["phone"] == "0901234567"
    assert payload["shippingAddress"]["fullAddress"].startswith("12 Lê Lợi")


@pytest.mark.asyncio
async def test_failed_order_keeps_cart_and_draft(ready, backend, storage):
    backend.on("POST", "/customer/orders", status_code=400, json={"success": False, "message": "Sản phẩm đã hết hàng"})
    saved_cart = storage[CART_KEY]

    with pytest.raises(BackendError) as exc:
        await ready.place_order(PaymentMethod.BANK_TRANSFER, "tok")

    assert exc.value.message == "Sản phẩm đã hết hàng"
    assert exc.value.status_code == 400
    assert storage[CART_KEY] == saved_cart
    assert ready.drafts.selected_address is not None
    assert ready.state is CheckoutState.PAYMENT_CHOSEN


@pytest.mark.asyncio
async def test_expired_session_keeps_cart(ready, backend):
    backend.on("POST", "/customer/orders", status_code=401, json={"message": "jwt expired"})

    with pytest.raises(SessionExpiredError):
        await ready.place_order(PaymentMethod.BANK_TRANSFER, "tok")

    assert ready.cart.get_count() == 2


@pytest.mark.asyncio
async def test_place_order_without_address_sends_nothing(sequencer, backend, st25):
    sequencer.cart.add_item(st25)

    with pytest.raises(CheckoutGuardError) as exc:
        await sequencer.place_order(PaymentMethod.BANK_TRANSFER, "tok")

    assert exc.value.redirect_to == "/dia-chi-giao-hang"
    assert backend.requests == []


@pytest.mark.asyncio
async def test_second_submission_while_first_in_flight_is_rejected(ready, backend):
    backend.on("POST", "/customer/orders", json={"data": {"_id": "o1"}})

    async with ready.in_flight.hold(ready.drafts.checkout_id):
        with pytest.raises(DuplicateSubmissionError):
            await ready.place_order(PaymentMethod.BANK_TRANSFER, "tok")

    assert backend.requests == []
    assert not ready.in_flight.is_held(ready.drafts.checkout_id)


@pytest.mark.asyncio
async def test_vnpay_below_minimum_creates_no_order(storage, client, backend, st25, address):
    sequencer = CheckoutSequencer.for_storage(storage, client, in_flight=InFlightGuard(), vnpay_min_amount=Decimal("500000"))
    sequencer.cart.add_item(st25, 1)
    sequencer.submit_address(address)

    with pytest.raises(CheckoutValidationError) as exc:
        await sequencer.place_order(PaymentMethod.VNPAY, "tok")

    assert "500.000 VND" in exc.value.message
    assert backend.requests == []
    assert not sequencer.cart.is_empty


@pytest.mark.asyncio
async def test_vnpay_returns_payment_url_and_keeps_cart(ready, backend, storage):
    backend.on("POST", "/customer/orders", json={"data": {"_id": "o1", "orderNumber": "DH0001"}})
    backend.on("POST", "/vnpay/create-payment-url", json={"success": True, "paymentUrl": "https://sandbox.vnpayment.vn/pay?x=1"})

    result = await ready.place_order(PaymentMethod.VNPAY, "tok")

    assert result.requires_redirect
    assert result.payment_url == "https://sandbox.vnpayment.vn/pay?x=1"
    assert storage[VNPAY_ORDER_KEY] == "o1"
    assert ready.cart.get_count() == 2

    payment_request = backend.body(backend.calls("POST", "/vnpay/create-payment-url")[0])
    assert payment_request == {"orderId": "o1", "amount": 380000, "orderInfo": "Thanh toan don hang DH0001"}
    assert backend.calls("POST", "/customer/orders")[0].headers["Authorization"] == "Bearer tok"
    assert backend.body(backend.calls("POST", "/customer/orders")[0])["paymentMethod"] == "vnpay"


@pytest.mark.asyncio
async def test_vnpay_retry_reuses_pending_order(ready, backend, storage):
    backend.on("POST", "/customer/orders", json={"data": {"_id": "o1"}})
    attempts = []

    def payment_url(request):
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(502, json={"message": "VNPAY không phản hồi"})
        return httpx.Response(200, json={"paymentUrl": "https://sandbox.vnpayment.vn/pay?x=2"})

    backend.on("POST", "/vnpay/create-payment-url", handler=payment_url)

    with pytest.raises(BackendError):
        await ready.place_order(PaymentMethod.VNPAY, "tok")
    assert storage[VNPAY_ORDER_KEY] == "o1"

    result = await ready.place_order(PaymentMethod.VNPAY, "tok")

    assert result.order_id == "o1"
    assert len(backend.calls("POST", "/customer/orders")) == 1
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_reconcile_paid_order_clears_state(ready, backend, storage):
    storage[VNPAY_ORDER_KEY] = "o1"
    backend.on("GET", "/vnpay/check-status/o1", json={
        "success": True,
        "data": {"orderId": "o1", "orderNumber": "DH0001", "status": "confirmed", "paymentStatus": "paid"}
    })

    result = await ready.reconcile_payment("o1", "tok")

    assert result.paid
    assert result.order_number == "DH0001"
    assert ready.cart.is_empty
    assert VNPAY_ORDER_KEY not in storage
    assert ready.drafts.selected_address is None


@pytest.mark.asyncio
async def test_reconcile_unpaid_order_keeps_cart(ready, backend, storage):
    ready.drafts.set_pending_order("o1", ready.order_fingerprint(PaymentMethod.VNPAY))
    backend.on("GET", "/vnpay/check-status/o1", json={"data": {"orderId": "o1", "paymentStatus": "failed"}})

    result = await ready.reconcile_payment("o1", "tok")

    assert not result.paid
    assert ready.cart.get_count() == 2
    assert ready.drafts.selected_address is not None
    assert VNPAY_ORDER_KEY not in storage
    assert VNPAY_FINGERPRINT_KEY not in storage


def _numbered_orders(backend):
    created = []

    def create_order(request):
        created.append(backend.body(request))
        return httpx.Response(201, json={"data": {"_id": f"o{len(created)}"}})

    backend.on("POST", "/customer/orders", handler=create_order)
    backend.on("POST", "/vnpay/create-payment-url", json={"paymentUrl": "https://sandbox.vnpayment.vn/pay?x=1"})
    return created


@pytest.mark.asyncio
async def test_failed_payment_then_changed_cart_creates_new_order(ready, backend, address):
    created = _numbered_orders(backend)
    backend.on("GET", "/vnpay/check-status/o1", json={"data": {"orderId": "o1", "paymentStatus": "failed"}})

    first = await ready.place_order(PaymentMethod.VNPAY, "tok")
    await ready.reconcile_payment(first.order_id, "tok")
    ready.cart.add_item({"_id": "B", "name": "Gạo lứt", "listedPrice": 100000}, 3)
    ready.submit_address(address, "Giao giờ hành chính")
    ready.confirm_review()
    second = await ready.place_order(PaymentMethod.VNPAY, "tok")

    assert (first.order_id, second.order_id) == ("o1", "o2")
    assert len(created) == 2
    assert created[1]["items"] == [{"product": "A", "quantity": 2}, {"product": "B", "quantity": 3}]
    amounts = [backend.body(r)["amount"] for r in backend.calls("POST", "/vnpay/create-payment-url")]
    assert amounts == [380000, 680000]
    assert ready.drafts.pending_order_id == "o2"


@pytest.mark.asyncio
async def test_cart_change_after_payment_link_failure_creates_new_order(ready, backend, storage):
    created = _numbered_orders(backend)
    attempts = []

    def payment_url(request):
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(502, json={"message": "VNPAY không phản hồi"})
        return httpx.Response(200, json={"paymentUrl": "https://sandbox.vnpayment.vn/pay?x=2"})

    backend.on("POST", "/vnpay/create-payment-url", handler=payment_url)

    with pytest.raises(BackendError):
        await ready.place_order(PaymentMethod.VNPAY, "tok")
    assert storage[VNPAY_ORDER_KEY] == "o1"

    ready.cart.update_quantity("A", 5)
    result = await ready.place_order(PaymentMethod.VNPAY, "tok")

    assert result.order_id == "o2"
    assert created[1]["items"] == [{"product": "A", "quantity": 5}]
    first_key, second_key = [r.headers["Idempotency-Key"] for r in backend.calls("POST", "/customer/orders")]
    assert first_key != second_key
    assert backend.body(attempts[1])["orderId"] == "o2"


def test_saving_address_drops_pending_order(ready, address, storage):
    ready.drafts.set_pending_order("o1", ready.order_fingerprint(PaymentMethod.VNPAY))

    ready.submit_address(address)

    assert VNPAY_ORDER_KEY not in storage
    assert VNPAY_FINGERPRINT_KEY not in storage

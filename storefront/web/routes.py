from fastapi import APIRouter, Request, Depends, Query, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pathlib import Path
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from storefront.api.catalog import as_list
from storefront.api.dependencies import get_auth_sessions, get_cart, get_sequencer
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.config import settings
from storefront.core.errors import (
    BackendError,
    CheckoutGuardError,
    CheckoutValidationError,
    DuplicateSubmissionError,
    SessionExpiredError,
)
from storefront.db.models import PaymentStatus
from storefront.db.session import get_db
from storefront.schemas.checkout import PaymentMethod, ShippingAddress
from storefront.schemas.product import Product
from storefront.services import pricing
from storefront.services.auth import AuthSessions, default_address, dual_login, logout
from storefront.services.cart import CartStore
from storefront.services.checkout import CheckoutSequencer, CheckoutStep
from storefront.services.orders import mark_payment_status, record_placed_order

logger = logging.getLogger(__name__)
router = APIRouter(tags=["web"])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["vnd"] = lambda amount: pricing.format_price(amount, settings.CURRENCY_SUFFIX)


def get_base_context(request: Request, cart: CartStore, sessions: AuthSessions) -> dict:
    return {
        "request": request,
        "shop_name": settings.SHOP_NAME,
        "cart_count": cart.get_count(),
        "customer": sessions.customer,
    }


def _login_redirect(next_path: str) -> RedirectResponse:
    return RedirectResponse(url=f"/login?next={next_path}", status_code=303)


def _guard_redirect(sequencer: CheckoutSequencer, step: CheckoutStep) -> Optional[RedirectResponse]:
    redirect = sequencer.guard(step)
    if redirect is not None:
        logger.info(f"Checkout step {step.value} not ready, redirecting to {redirect.path}")
        return RedirectResponse(url=redirect.path, status_code=303)
    return None


@router.get("/gio-hang", response_class=HTMLResponse)
async def view_cart(
    request: Request,
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    return templates.TemplateResponse("cart.html", {
        **get_base_context(request, cart, sessions),
        "cart": cart.to_response()
    })


@router.post("/gio-hang/them")
async def add_to_cart(
    request: Request,
    product_id: str = Form(...),
    quantity: int = Form(1),
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    """Add a catalog product to the cart from a product card or detail page."""
    error = None
    try:
        product = Product.from_catalog(await client.get_product(product_id) or {})
        if not cart.add_item(product, quantity):
            error = "Không thể thêm sản phẩm vào giỏ hàng"
    except BackendError as e:
        error = e.message
    except (ValueError, ValidationError) as e:
        logger.warning(f"Catalog product {product_id} could not be read: {str(e)}")
        error = "Không thể thêm sản phẩm vào giỏ hàng"

    if error:
        return templates.TemplateResponse("cart.html", {
            **get_base_context(request, cart, sessions),
            "cart": cart.to_response(error=error)
        })
    return RedirectResponse(url=CheckoutStep.CART.path, status_code=303)


@router.post("/gio-hang/cap-nhat")
async def update_cart_item(
    product_id: str = Form(...),
    quantity: int = Form(...),
    cart: CartStore = Depends(get_cart)
):
    cart.update_quantity(product_id, quantity)
    return RedirectResponse(url=CheckoutStep.CART.path, status_code=303)


@router.post("/gio-hang/xoa")
async def remove_cart_item(product_id: str = Form(...), cart: CartStore = Depends(get_cart)):
    cart.remove_item(product_id)
    return RedirectResponse(url=CheckoutStep.CART.path, status_code=303)


@router.get("/dia-chi-giao-hang", response_class=HTMLResponse)
async def address_page(
    request: Request,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    if not sessions.customer_token:
        return _login_redirect(CheckoutStep.ADDRESS.path)
    redirect = _guard_redirect(sequencer, CheckoutStep.ADDRESS)
    if redirect:
        return redirect

    address = sequencer.drafts.selected_address or default_address(sessions.customer) or ShippingAddress()
    return templates.TemplateResponse("checkout/address.html", {
        **get_base_context(request, sequencer.cart, sessions),
        "address": address,
        "notes": sequencer.drafts.notes,
        "summary": sequencer.summary()
    })


@router.post("/dia-chi-giao-hang", response_class=HTMLResponse)
async def address_submit(
    request: Request,
    name: str = Form(""),
    phone: str = Form(""),
    street: str = Form(""),
    ward: str = Form(""),
    district: str = Form(""),
    city: str = Form(""),
    notes: str = Form(""),
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    if not sessions.customer_token:
        return _login_redirect(CheckoutStep.ADDRESS.path)

    address = ShippingAddress(name=name, phone=phone, street=street, ward=ward, district=district, city=city)
    try:
        next_step = sequencer.submit_address(address, notes)
    except CheckoutGuardError as e:
        return RedirectResponse(url=e.redirect_to, status_code=303)
    except CheckoutValidationError as e:
        return templates.TemplateResponse("checkout/address.html", {
            **get_base_context(request, sequencer.cart, sessions),
            "address": address,
            "notes": notes,
            "summary": sequencer.summary(),
            "error": e.message
        }, status_code=400)

    return RedirectResponse(url=next_step.path, status_code=303)


@router.get("/duyet-lai-don-hang", response_class=HTMLResponse)
async def review_page(
    request: Request,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    if not sessions.customer_token:
        return _login_redirect(CheckoutStep.REVIEW.path)
    redirect = _guard_redirect(sequencer, CheckoutStep.REVIEW)
    if redirect:
        return redirect

    return templates.TemplateResponse("checkout/review.html", {
        **get_base_context(request, sequencer.cart, sessions),
        "cart": sequencer.cart.to_response(),
        "address": sequencer.drafts.selected_address,
        "notes": sequencer.drafts.notes,
        "summary": sequencer.summary()
    })


@router.post("/duyet-lai-don-hang")
async def review_confirm(
    notes: Optional[str] = Form(None),
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    if not sessions.customer_token:
        return _login_redirect(CheckoutStep.REVIEW.path)
    try:
        next_step = sequencer.confirm_review()
    except CheckoutGuardError as e:
        return RedirectResponse(url=e.redirect_to, status_code=303)

    if notes is not None:
        sequencer.drafts.set_notes(notes)
    return RedirectResponse(url=next_step.path, status_code=303)


def _payment_context(request: Request, sequencer: CheckoutSequencer, sessions: AuthSessions, **extra) -> dict:
    return {
        **get_base_context(request, sequencer.cart, sessions),
        "address": sequencer.drafts.selected_address,
        "summary": sequencer.summary(),
        "payment_methods": list(PaymentMethod),
        "selected_method": sequencer.drafts.payment_method or PaymentMethod.BANK_TRANSFER,
        "vnpay_min_amount": sequencer.vnpay_min_amount,
        **extra
    }


@router.get("/phuong-thuc-thanh-toan", response_class=HTMLResponse)
async def payment_page(
    request: Request,
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    if not sessions.customer_token:
        return _login_redirect(CheckoutStep.PAYMENT.path)
    redirect = _guard_redirect(sequencer, CheckoutStep.PAYMENT)
    if redirect:
        return redirect
    return templates.TemplateResponse("checkout/payment.html", _payment_context(request, sequencer, sessions))


@router.post("/phuong-thuc-thanh-toan", response_class=HTMLResponse)
async def payment_submit(
    request: Request,
    payment_method: PaymentMethod = Form(PaymentMethod.BANK_TRANSFER),
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions),
    db: AsyncSession = Depends(get_db)
):
    """Place the order. Any failure re-renders the page with cart and draft intact."""
    token = sessions.customer_token
    if not token:
        return _login_redirect(CheckoutStep.PAYMENT.path)

    summary = sequencer.summary()
    address = sequencer.drafts.selected_address
    checkout_id = sequencer.drafts.checkout_id

    try:
        result = await sequencer.place_order(payment_method, token)
    except CheckoutGuardError as e:
        return RedirectResponse(url=e.redirect_to, status_code=303)
    except SessionExpiredError:
        raise
    except (CheckoutValidationError, DuplicateSubmissionError, BackendError) as e:
        return templates.TemplateResponse(
            "checkout/payment.html",
            _payment_context(request, sequencer, sessions, selected_method=payment_method, error=e.message),
            status_code=400
        )

    customer = sessions.customer or {}
    await record_placed_order(db, result, summary, address, customer.get("email"), checkout_id)

    if result.requires_redirect:
        return RedirectResponse(url=result.payment_url, status_code=303)
    return RedirectResponse(
        url=f"{CheckoutStep.SUCCESS.path}?order={result.order_number or result.order_id}",
        status_code=303
    )


@router.get("/don-hang-thanh-cong", response_class=HTMLResponse)
async def order_success(
    request: Request,
    order: Optional[str] = None,
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    return templates.TemplateResponse("checkout/success.html", {
        **get_base_context(request, cart, sessions),
        "order_number": order
    })


@router.get("/thanh-toan-vnpay/processing", response_class=HTMLResponse)
async def vnpay_processing(
    request: Request,
    order_id: Optional[str] = Query(None, alias="orderId"),
    sequencer: CheckoutSequencer = Depends(get_sequencer),
    sessions: AuthSessions = Depends(get_auth_sessions),
    db: AsyncSession = Depends(get_db)
):
    """Return URL of the hosted payment page: check the order and route to success or fail."""
    token = sessions.customer_token
    order_id = order_id or sequencer.drafts.pending_order_id
    if not token:
        return _login_redirect("/thanh-toan-vnpay/processing")
    if not order_id:
        return RedirectResponse(url=CheckoutStep.CART.path, status_code=303)

    try:
        result = await sequencer.reconcile_payment(order_id, token)
    except SessionExpiredError:
        raise
    except BackendError as e:
        logger.error(f"Error checking VNPay status for order {order_id}: {e.message}")
        return templates.TemplateResponse("vnpay/processing.html", {
            **get_base_context(request, sequencer.cart, sessions),
            "order_id": order_id,
            "error": e.message
        })

    if result.paid:
        await mark_payment_status(db, order_id, PaymentStatus.PAID)
        return RedirectResponse(url=f"/thanh-toan-vnpay/success?order={result.order_number or order_id}", status_code=303)
    await mark_payment_status(db, order_id, PaymentStatus.FAILED)
    return RedirectResponse(url=f"/thanh-toan-vnpay/fail?order={result.order_number or order_id}", status_code=303)


@router.get("/thanh-toan-vnpay/success", response_class=HTMLResponse)
async def vnpay_success(
    request: Request,
    order: Optional[str] = None,
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    return templates.TemplateResponse("vnpay/result.html", {
        **get_base_context(request, cart, sessions),
        "paid": True,
        "order_number": order
    })


@router.get("/thanh-toan-vnpay/fail", response_class=HTMLResponse)
async def vnpay_fail(
    request: Request,
    order: Optional[str] = None,
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    # Cart and draft are kept so the shopper can retry from the payment step
    return templates.TemplateResponse("vnpay/result.html", {
        **get_base_context(request, cart, sessions),
        "paid": False,
        "order_number": order
    })


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    next: str = Query("/"),
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions)
):
    return templates.TemplateResponse("auth/login.html", {
        **get_base_context(request, cart, sessions),
        "next": next
    })


@router.post("/login", response_class=HTMLResponse)
async def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: str = Form("/"),
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    try:
        audience = await dual_login(client, sessions, email, password)
    except BackendError as e:
        return templates.TemplateResponse("auth/login.html", {
            **get_base_context(request, cart, sessions),
            "next": next,
            "email": email,
            "error": e.message
        }, status_code=401)

    if audience == "admin":
        return RedirectResponse(url="/admin/dashboard", status_code=303)
    # Only local paths, never an absolute URL from the query string
    if not next.startswith("/") or next.startswith("//"):
        next = "/"
    return RedirectResponse(url=next, status_code=303)


@router.get("/admin/dashboard", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    cart: CartStore = Depends(get_cart),
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    """Landing page after an admin login: the latest orders."""
    admin = sessions.admin
    if admin is None:
        return _login_redirect("/admin/dashboard")

    context = {**get_base_context(request, cart, sessions), "admin": admin, "orders": []}
    try:
        data = await client.list_orders(sessions.admin_token, {"page": 1, "limit": 20})
        context["orders"] = [order for order in as_list(data, "orders") if isinstance(order, dict)]
    except SessionExpiredError:
        raise
    except BackendError as e:
        logger.error(f"Error loading admin orders: {e.message}")
        context["error"] = e.message
    return templates.TemplateResponse("admin/dashboard.html", context)


@router.get("/logout")
async def logout_route(
    audience: str = Query("customer"),
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    await logout(client, sessions, audience)
    return RedirectResponse(url="/login", status_code=303)


@router.get("/", response_class=HTMLResponse)
async def home():
    return RedirectResponse(url=CheckoutStep.CART.path, status_code=303)

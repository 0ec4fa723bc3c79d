import logging
from typing import Optional

from storefront.core.backend_client import BackendClient
from storefront.core.config import settings
from storefront.core.errors import BackendError, SessionExpiredError
from storefront.core.storage import (
    ADMIN_TOKEN_KEY,
    ADMIN_USER_KEY,
    CUSTOMER_KEY,
    CUSTOMER_TOKEN_KEY,
    Storage,
    read_json,
    remove_keys,
    write_json,
)
from storefront.schemas.checkout import ShippingAddress

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "staff")
ADMIN_PAGE_MESSAGE = "Vui lòng đăng nhập qua trang quản trị"
LOGIN_FAILED_MESSAGE = "Email hoặc mật khẩu không đúng"
# Only what the pages read is kept; the rest would bloat the session cookie
PROFILE_FIELDS = ("_id", "id", "email", "fullName", "name", "role", "phoneNumber", "phone", "address", "region")


def _profile(user: dict) -> dict:
    return {key: value for key, value in (user or {}).items() if key in PROFILE_FIELDS}


class AuthSessions:
    """Customer and admin sessions, kept side by side and never merged."""

    def __init__(self, storage: Storage):
        self.storage = storage

    @property
    def customer_token(self) -> Optional[str]:
        return self.storage.get(CUSTOMER_TOKEN_KEY)

    @property
    def customer(self) -> Optional[dict]:
        if not self.customer_token:
            return None
        customer = read_json(self.storage, CUSTOMER_KEY)
        if customer is None:
            # Unreadable profile means the session is unusable
            self.clear_customer()
        return customer

    @property
    def admin_token(self) -> Optional[str]:
        return self.storage.get(ADMIN_TOKEN_KEY)

    @property
    def admin(self) -> Optional[dict]:
        if not self.admin_token:
            return None
        user = read_json(self.storage, ADMIN_USER_KEY)
        if user is None:
            self.clear_admin()
        return user

    def store_customer(self, token: str, user: dict) -> None:
        self.storage[CUSTOMER_TOKEN_KEY] = token
        write_json(self.storage, CUSTOMER_KEY, _profile(user))

    def store_admin(self, token: str, user: dict) -> None:
        self.storage[ADMIN_TOKEN_KEY] = token
        write_json(self.storage, ADMIN_USER_KEY, _profile(user))

    def clear_customer(self) -> None:
        remove_keys(self.storage, CUSTOMER_TOKEN_KEY, CUSTOMER_KEY)

    def clear_admin(self) -> None:
        remove_keys(self.storage, ADMIN_TOKEN_KEY, ADMIN_USER_KEY)

    def clear(self, audience: str) -> None:
        if audience == "admin":
            self.clear_admin()
        else:
            self.clear_customer()


def _is_admin(user: dict) -> bool:
    return (user or {}).get("role") in ADMIN_ROLES


def _token_and_user(response: dict) -> tuple:
    token = response.get("token") or response.get("accessToken")
    user = response.get("user") or {}
    if not token:
        raise BackendError(LOGIN_FAILED_MESSAGE, status_code=401)
    return token, user


async def customer_login(client: BackendClient, sessions: AuthSessions, email: str, password: str) -> dict:
    response = await client.login(email, password)
    token, user = _token_and_user(response)

    if _is_admin(user):
        raise BackendError(ADMIN_PAGE_MESSAGE, status_code=403)

    sessions.store_customer(token, user)
    logger.info(f"Customer logged in: {email}")
    return user


async def admin_login(client: BackendClient, sessions: AuthSessions, email: str, password: str) -> dict:
    response = await client.login(email, password)
    token, user = _token_and_user(response)

    if not _is_admin(user):
        raise BackendError("Bạn không có quyền truy cập trang quản trị", status_code=403)

    sessions.store_admin(token, user)
    logger.info(f"Admin logged in: {email}")
    return user


async def dual_login(client: BackendClient, sessions: AuthSessions, email: str, password: str) -> str:
    """
    Try the credentials as a customer first, then as an admin.

    Returns the audience that succeeded. When both fail the customer error is
    the one reported, since that is what a shopper most likely meant.
    """
    try:
        await customer_login(client, sessions, email, password)
        return "customer"
    except BackendError as customer_error:
        logger.info(f"Customer login failed for {email}, trying admin login")
        try:
            await admin_login(client, sessions, email, password)
            return "admin"
        except BackendError:
            raise customer_error


async def register_customer(client: BackendClient, full_name: str, email: str, password: str) -> str:
    # Registration never logs in; the shopper signs in afterwards
    await client.register(full_name, email, password)
    logger.info(f"New customer registered: {email}")
    return "Đăng ký thành công! Vui lòng đăng nhập để tiếp tục."


async def oauth_login(
    client: BackendClient,
    sessions: AuthSessions,
    provider: str,
    token: str,
    user_id: Optional[str] = None
) -> dict:
    response = await client.oauth_login(provider, token, user_id)
    access_token, user = _token_and_user(response)

    if _is_admin(user):
        raise BackendError(ADMIN_PAGE_MESSAGE, status_code=403)

    sessions.store_customer(access_token, user)
    logger.info(f"Customer logged in with {provider}")
    return user


async def logout(client: BackendClient, sessions: AuthSessions, audience: str = "customer") -> None:
    token = sessions.admin_token if audience == "admin" else sessions.customer_token
    if token:
        try:
            await client.logout(token, audience)
        except (BackendError, SessionExpiredError) as e:
            logger.warning(f"Backend logout failed, clearing local session anyway: {e.message}")
    sessions.clear(audience)


def default_address(customer: Optional[dict]) -> Optional[ShippingAddress]:
    """Prefill the address step from the customer's profile, if it has anything useful."""
    if not customer:
        return None

    profile_address = customer.get("address") if isinstance(customer.get("address"), dict) else {}
    address = ShippingAddress(
        name=customer.get("fullName") or customer.get("name") or "",
        phone=customer.get("phoneNumber") or customer.get("phone") or "",
        street=profile_address.get("street") or "",
        ward=profile_address.get("ward") or "",
        district=profile_address.get("district") or "",
        city=profile_address.get("city") or customer.get("region") or "",
        country=profile_address.get("country") or settings.DEFAULT_COUNTRY
    )
    if address.name or address.phone or address.street:
        return address
    return None

from fastapi import Depends, HTTPException, Request, status

from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.storage import Storage
from storefront.services.auth import AuthSessions
from storefront.services.cart import CartStore
from storefront.services.checkout import CheckoutDraftStore, CheckoutSequencer


def get_storage(request: Request) -> Storage:
    """The shopper's client-side storage (signed session cookie)."""
    return request.session


def get_cart(storage: Storage = Depends(get_storage)) -> CartStore:
    return CartStore(storage)


def get_auth_sessions(storage: Storage = Depends(get_storage)) -> AuthSessions:
    return AuthSessions(storage)


def get_sequencer(
    storage: Storage = Depends(get_storage),
    cart: CartStore = Depends(get_cart),
    client: BackendClient = Depends(get_backend_client)
) -> CheckoutSequencer:
    return CheckoutSequencer(cart, CheckoutDraftStore(storage), client)


async def get_customer_token(sessions: AuthSessions = Depends(get_auth_sessions)) -> str:
    token = sessions.customer_token
    if not token or sessions.customer is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Vui lòng đăng nhập để tiếp tục"
        )
    return token


async def get_admin_token(sessions: AuthSessions = Depends(get_auth_sessions)) -> str:
    token = sessions.admin_token
    if not token or sessions.admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please log in."
        )
    return token

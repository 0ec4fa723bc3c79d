from fastapi import APIRouter, Depends, HTTPException, status
import logging

from storefront.api.dependencies import get_auth_sessions
from storefront.core.backend_client import BackendClient, get_backend_client
from storefront.core.errors import BackendError
from storefront.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OAuthLoginRequest,
    RegisterRequest,
)
from storefront.services import auth as auth_service
from storefront.services.auth import AuthSessions

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    """Sign in as a customer, or as an admin if the account is one."""
    try:
        audience = await auth_service.dual_login(client, sessions, credentials.email, credentials.password)
    except BackendError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message or auth_service.LOGIN_FAILED_MESSAGE
        )

    if audience == "admin":
        return LoginResponse(audience=audience, user=sessions.admin or {}, redirect_to="/admin/dashboard")
    return LoginResponse(audience=audience, user=sessions.customer or {}, redirect_to="/")


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    client: BackendClient = Depends(get_backend_client)
):
    """Register a new customer."""
    try:
        message = await auth_service.register_customer(client, data.full_name, data.email, data.password)
    except BackendError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return MessageResponse(message=message)


@router.post("/oauth/{provider}", response_model=LoginResponse)
async def oauth_login(
    provider: str,
    data: OAuthLoginRequest,
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    """Exchange a Google or Facebook token for a customer session."""
    try:
        user = await auth_service.oauth_login(client, sessions, provider, data.token, data.user_id)
    except BackendError as e:
        raise HTTPException(status_code=e.status_code or status.HTTP_401_UNAUTHORIZED, detail=e.message)
    return LoginResponse(audience="customer", user=user, redirect_to="/")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    audience: str = "customer",
    sessions: AuthSessions = Depends(get_auth_sessions),
    client: BackendClient = Depends(get_backend_client)
):
    await auth_service.logout(client, sessions, audience)
    return MessageResponse(message="Đã đăng xuất")


@router.get("/me")
async def get_current_customer_info(sessions: AuthSessions = Depends(get_auth_sessions)):
    """Get current customer information."""
    customer = sessions.customer
    if not customer:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return customer

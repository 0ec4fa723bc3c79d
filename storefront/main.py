import logging
from pathlib import Path
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from storefront.core.config import settings
from storefront.core.errors import BackendError, SessionExpiredError
from storefront.api import admin, auth, cart, catalog, checkout, orders, wishlist
from storefront.services.auth import AuthSessions
from storefront.web import routes as web

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{settings.SHOP_NAME} - Storefront",
    description="Rice shop storefront: cart, checkout and payment",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.mount("/static", StaticFiles(directory=str(Path(__file__).resolve().parent / "static")), name="static")

# The signed session cookie is the shopper's client-side storage
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET_KEY,
    max_age=3600 * 24 * settings.SESSION_MAX_AGE_DAYS
)

app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(orders.admin_router)
app.include_router(admin.router)
app.include_router(wishlist.router)
app.include_router(web.router)


def _is_api_request(request: Request) -> bool:
    return request.url.path.startswith("/api") or "application/json" in request.headers.get("accept", "")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "shop_name": settings.SHOP_NAME}


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(request: Request, exc: SessionExpiredError):
    # Only the expired audience is signed out; cart and checkout draft stay
    AuthSessions(request.session).clear(exc.audience)
    logger.info(f"Session expired for {exc.audience} on {request.url.path}")

    if _is_api_request(request):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": exc.message})
    return RedirectResponse(url=f"/login?next={request.url.path}", status_code=302)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    logger.error(f"Unhandled backend error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code or status.HTTP_502_BAD_GATEWAY,
        content={"detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    # For 401 errors on web routes, redirect to login
    if exc.status_code == 401 and not _is_api_request(request):
        return RedirectResponse(url=f"/login?next={request.url.path}", status_code=302)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.SHOP_NAME} storefront against {settings.BACKEND_API_BASE_URL}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down storefront")
    from storefront.core.backend_client import backend_client
    await backend_client.close()

import logging
from typing import Any, Dict, Generator, Optional

import httpx

from storefront.core.config import settings
from storefront.core.errors import GENERIC_BACKEND_MESSAGE, BackendError, SessionExpiredError

logger = logging.getLogger(__name__)


class BearerTokenAuth(httpx.Auth):
    """Attaches the session's bearer token and turns a 401 into a forced logout."""

    def __init__(self, token: str, audience: str = "customer"):
        self.token = token
        self.audience = audience

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.token}"
        response = yield request
        if response.status_code == 401:
            logger.warning(f"Backend rejected {self.audience} token for {request.method} {request.url.path}")
            raise SessionExpiredError(self.audience)


def _backend_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None


def _unwrap(result: Any) -> Any:
    # Most endpoints answer {"success": true, "data": ...}
    if isinstance(result, dict) and "data" in result:
        return result["data"]
    return result


class BackendClient:
    """HTTP client for the storefront's REST backend."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.base_url = (base_url or settings.BACKEND_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.BACKEND_TIMEOUT_SECONDS
        self.transport = transport
        self.client = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"Content-Type": "application/json"}
            )
        return self.client

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        audience: str = "customer",
        fallback: str = GENERIC_BACKEND_MESSAGE,
        **kwargs
    ) -> Any:
        client = await self._get_client()
        auth = BearerTokenAuth(access_token, audience) if access_token else None
        url = f"{self.base_url}{path}"

        try:
            response = await client.request(method, url, auth=auth, **kwargs)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
        except SessionExpiredError:
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"Backend {method} {path} failed with status {e.response.status_code}: {e.response.text}")
            raise BackendError(_backend_message(e.response) or fallback, status_code=e.response.status_code)
        except httpx.TimeoutException as e:
            logger.error(f"Backend {method} {path} timed out after {self.timeout}s: {str(e)}")
            raise BackendError(fallback)
        except httpx.HTTPError as e:
            logger.error(f"Backend {method} {path} failed: {str(e)}")
            raise BackendError(fallback)
        except ValueError as e:
            logger.error(f"Backend {method} {path} returned invalid JSON: {str(e)}")
            raise BackendError(fallback)

    # Catalog

    async def list_products(self, params: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._request(
            "GET", "/public/products", params=params or {},
            fallback="Không thể tải danh sách sản phẩm"
        )
        return _unwrap(result)

    async def get_product(self, product_id: str) -> dict:
        result = await self._request(
            "GET", f"/public/products/{product_id}",
            fallback="Không tìm thấy sản phẩm"
        )
        return _unwrap(result)

    async def list_categories(self) -> Any:
        result = await self._request("GET", "/public/categories", fallback="Không thể tải danh mục")
        return _unwrap(result)

    async def list_reviews(self, product_id: Optional[str] = None) -> Any:
        params = {"product": product_id} if product_id else {}
        result = await self._request("GET", "/public/reviews", params=params, fallback="Không thể tải đánh giá")
        return _unwrap(result)

    async def create_review(self, payload: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Posting review for {payload.get('target_type')} {payload.get('target_id')}")
        result = await self._request(
            "POST", "/reviews",
            access_token=access_token,
            json=payload,
            fallback="Gửi đánh giá thất bại"
        )
        return _unwrap(result)

    async def list_posts(self, params: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._request("GET", "/public/posts", params=params or {}, fallback="Không thể tải tin tức")
        return _unwrap(result)

    async def get_post(self, post_id: str) -> dict:
        result = await self._request("GET", f"/public/posts/{post_id}", fallback="Không tìm thấy bài viết")
        return _unwrap(result)

    # Customer orders

    async def create_order(
        self,
        payload: Dict[str, Any],
        access_token: str,
        idempotency_key: Optional[str] = None
    ) -> dict:
        """
        Create order on backend.

        POST /customer/orders
        {
          "items": [{"product": "<id>", "quantity": 2}],
          "shippingAddress": {"name": "...", "phone": "...", "fullAddress": "..."},
          "paymentMethod": "cash",
          "discountAmount": 50000,
          "shippingFee": 30000,
          "notes": ""
        }

        Returns: {"_id": "...", "orderNumber": "...", "status": "...", ...}
        """
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        logger.info(f"Creating order on backend with {len(payload.get('items', []))} items")
        logger.debug(f"Order payload: {payload}")

        result = await self._request(
            "POST", "/customer/orders",
            access_token=access_token,
            json=payload,
            headers=headers,
            fallback="Đặt hàng thất bại, vui lòng thử lại"
        )
        order = _unwrap(result) or {}
        logger.info(f"Backend order created successfully: {order.get('_id') or order.get('id')}")
        return order

    async def list_customer_orders(self, access_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._request(
            "GET", "/customer/orders",
            access_token=access_token,
            params=params or {},
            fallback="Không thể tải danh sách đơn hàng"
        )
        return _unwrap(result)

    async def get_customer_order(self, order_id: str, access_token: str) -> dict:
        result = await self._request(
            "GET", f"/customer/orders/{order_id}",
            access_token=access_token,
            fallback="Không tìm thấy đơn hàng"
        )
        return _unwrap(result)

    # Admin order management

    async def list_orders(self, access_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._request(
            "GET", "/orders",
            access_token=access_token,
            audience="admin",
            params=params or {},
            fallback="Không thể tải danh sách đơn hàng"
        )
        return _unwrap(result)

    async def get_order(self, order_id: str, access_token: str) -> dict:
        result = await self._request(
            "GET", f"/orders/{order_id}",
            access_token=access_token,
            audience="admin",
            fallback="Không tìm thấy đơn hàng"
        )
        return _unwrap(result)

    async def update_order(self, order_id: str, changes: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Updating order {order_id}: {changes}")
        result = await self._request(
            "PUT", f"/orders/{order_id}",
            access_token=access_token,
            audience="admin",
            json=changes,
            fallback="Cập nhật đơn hàng thất bại"
        )
        return _unwrap(result)

    # Admin catalog management

    async def _admin(self, method: str, path: str, access_token: str, fallback: str, **kwargs) -> Any:
        result = await self._request(
            method, path,
            access_token=access_token,
            audience="admin",
            fallback=fallback,
            **kwargs
        )
        return _unwrap(result)

    async def list_admin_products(self, access_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._admin(
            "GET", "/products", access_token, "Không thể tải danh sách sản phẩm", params=params or {}
        )

    async def get_admin_product(self, product_id: str, access_token: str) -> dict:
        return await self._admin("GET", f"/products/{product_id}", access_token, "Không tìm thấy sản phẩm")

    async def create_product(self, payload: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Creating product {payload.get('productId')}")
        return await self._admin("POST", "/products", access_token, "Thêm sản phẩm thất bại", json=payload)

    async def update_product(self, product_id: str, changes: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Updating product {product_id}: {sorted(changes)}")
        return await self._admin(
            "PUT", f"/products/{product_id}", access_token, "Cập nhật sản phẩm thất bại", json=changes
        )

    async def delete_product(self, product_id: str, access_token: str) -> Any:
        logger.info(f"Deleting product {product_id}")
        return await self._admin("DELETE", f"/products/{product_id}", access_token, "Xóa sản phẩm thất bại")

    async def review_product(self, product_id: str, approve: bool, access_token: str) -> dict:
        """Approve or reject a seller-submitted product."""
        action = "approve" if approve else "reject"
        logger.info(f"Product {product_id}: {action}")
        return await self._admin(
            "PUT", f"/products/{product_id}/{action}", access_token, "Duyệt sản phẩm thất bại"
        )

    async def create_category(self, payload: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Creating category {payload.get('name')}")
        return await self._admin("POST", "/categories", access_token, "Thêm danh mục thất bại", json=payload)

    async def update_category(self, category_id: str, changes: Dict[str, Any], access_token: str) -> dict:
        return await self._admin(
            "PUT", f"/categories/{category_id}", access_token, "Cập nhật danh mục thất bại", json=changes
        )

    async def delete_category(self, category_id: str, access_token: str) -> Any:
        logger.info(f"Deleting category {category_id}")
        return await self._admin("DELETE", f"/categories/{category_id}", access_token, "Xóa danh mục thất bại")

    async def list_admin_posts(self, access_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._admin("GET", "/posts", access_token, "Không thể tải tin tức", params=params or {})

    async def get_admin_post(self, post_id: str, access_token: str) -> dict:
        return await self._admin("GET", f"/posts/{post_id}", access_token, "Không tìm thấy bài viết")

    async def create_post(self, payload: Dict[str, Any], access_token: str) -> dict:
        logger.info(f"Creating post {payload.get('title')}")
        return await self._admin("POST", "/posts", access_token, "Thêm bài viết thất bại", json=payload)

    async def update_post(self, post_id: str, changes: Dict[str, Any], access_token: str) -> dict:
        return await self._admin(
            "PUT", f"/posts/{post_id}", access_token, "Cập nhật bài viết thất bại", json=changes
        )

    async def delete_post(self, post_id: str, access_token: str) -> Any:
        logger.info(f"Deleting post {post_id}")
        return await self._admin("DELETE", f"/posts/{post_id}", access_token, "Xóa bài viết thất bại")

    # Hosted payment (VNPay)

    async def create_payment_url(self, order_id: str, amount: int, order_info: str, access_token: str) -> str:
        result = await self._request(
            "POST", "/vnpay/create-payment-url",
            access_token=access_token,
            json={"orderId": order_id, "amount": amount, "orderInfo": order_info},
            fallback="Không thể tạo liên kết thanh toán VNPAY"
        )
        payment_url = result.get("paymentUrl") if isinstance(result, dict) else None
        if not payment_url:
            logger.error(f"VNPay response for order {order_id} has no paymentUrl: {result}")
            raise BackendError("Không thể tạo liên kết thanh toán VNPAY")
        return payment_url

    async def check_payment_status(self, order_id: str, access_token: str) -> dict:
        result = await self._request(
            "GET", f"/vnpay/check-status/{order_id}",
            access_token=access_token,
            fallback="Không thể kiểm tra trạng thái thanh toán"
        )
        return _unwrap(result)

    # Wishlist

    async def add_to_wishlist(self, product_id: str, access_token: str, note: Optional[str] = None) -> dict:
        result = await self._request(
            "POST", "/wishlist",
            access_token=access_token,
            json={"product_id": product_id, "note": note},
            fallback="Không thể thêm vào danh sách yêu thích"
        )
        return _unwrap(result)

    async def list_wishlist(self, access_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._request(
            "GET", "/wishlist",
            access_token=access_token,
            params=params or {},
            fallback="Không thể tải danh sách yêu thích"
        )
        return _unwrap(result)

    async def remove_from_wishlist(self, item_id: str, access_token: str) -> dict:
        return await self._request(
            "DELETE", f"/wishlist/delete/{item_id}",
            access_token=access_token,
            fallback="Không thể xóa khỏi danh sách yêu thích"
        )

    async def clear_wishlist(self, access_token: str, group_id: Optional[str] = None) -> dict:
        params = {"group_id": group_id} if group_id else {}
        return await self._request(
            "DELETE", "/wishlist/clear",
            access_token=access_token,
            params=params,
            fallback="Không thể xóa danh sách yêu thích"
        )

    # Auth

    async def login(self, email: str, password: str) -> dict:
        logger.info(f"Attempting backend login for: {email}")
        return await self._request(
            "POST", "/auth/login",
            json={"email": email, "password": password},
            fallback="Đăng nhập thất bại"
        )

    async def register(self, full_name: str, email: str, password: str) -> dict:
        logger.info(f"Registering customer: {email}")
        return await self._request(
            "POST", "/auth/register",
            json={"fullName": full_name, "email": email, "password": password, "role": "user"},
            fallback="Đăng ký thất bại"
        )

    async def oauth_login(self, provider: str, token: str, user_id: Optional[str] = None) -> dict:
        if provider == "google":
            path, body = "/auth/google-login", {"idToken": token}
        elif provider == "facebook":
            path, body = "/auth/facebook-login", {"accessToken": token, "userID": user_id}
        else:
            raise BackendError(f"Unsupported login provider: {provider}", status_code=400)

        logger.info(f"Attempting {provider} token exchange")
        return await self._request("POST", path, json=body, fallback="Đăng nhập thất bại")

    async def logout(self, access_token: str, audience: str = "customer") -> dict:
        return await self._request(
            "POST", "/auth/logout",
            access_token=access_token,
            audience=audience,
            fallback="Đăng xuất thất bại"
        )

    async def close(self):
        """Close HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None


# Global instance
backend_client = BackendClient()


def get_backend_client() -> BackendClient:
    """Dependency for getting the shared backend client."""
    return backend_client

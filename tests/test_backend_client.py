import httpx
import pytest

from storefront.core.errors import GENERIC_BACKEND_MESSAGE, BackendError, SessionExpiredError


@pytest.mark.asyncio
async def test_unwraps_data_envelope(client, backend):
    backend.on("GET", "/public/products/A", json={"success": True, "data": {"_id": "A", "name": "Gạo ST25"}})

    product = await client.get_product("A")

    assert product == {"_id": "A", "name": "Gạo ST25"}
    assert "Authorization" not in backend.requests[0].headers


@pytest.mark.asyncio
async def test_attaches_bearer_token(client, backend):
    backend.on("GET", "/customer/orders", json={"success": True, "data": []})

    orders = await client.list_customer_orders("tok", {"page": 1})

    assert orders == []
    request = backend.requests[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.params["page"] == "1"


@pytest.mark.asyncio
async def test_401_with_token_expires_session(client, backend):
    backend.on("GET", "/orders", status_code=401, json={"message": "Token expired"})

    with pytest.raises(SessionExpiredError) as exc:
        await client.list_orders("admin-tok")

    assert exc.value.audience == "admin"
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_backend_message_is_surfaced(client, backend):
    backend.on("POST", "/auth/register", status_code=409, json={"success": False, "message": "Email đã tồn tại"})

    with pytest.raises(BackendError) as exc:
        await client.register("An", "an@huonggaoque.vn", "matkhau123")

    assert exc.value.message == "Email đã tồn tại"
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_fallback_message_without_backend_message(client, backend):
    backend.on("GET", "/public/categories", handler=lambda request: httpx.Response(500, text="Internal Server Error"))

    with pytest.raises(BackendError) as exc:
        await client.list_categories()

    assert exc.value.message == "Không thể tải danh mục"
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_timeout_becomes_backend_error(client, backend):
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend.on("POST", "/customer/orders", handler=timeout)

    with pytest.raises(BackendError) as exc:
        await client.create_order({"items": []}, "tok")

    assert exc.value.message == "Đặt hàng thất bại, vui lòng thử lại"
    assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_invalid_json_becomes_backend_error(client, backend):
    backend.on("GET", "/public/posts", handler=lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(BackendError):
        await client.list_posts()


@pytest.mark.asyncio
async def test_idempotency_key_header(client, backend):
    backend.on("POST", "/customer/orders", json={"data": {"_id": "o1"}})

    order = await client.create_order({"items": []}, "tok", idempotency_key="chk-1")

    assert order["_id"] == "o1"
    assert backend.requests[0].headers["Idempotency-Key"] == "chk-1"


@pytest.mark.asyncio
async def test_payment_url_missing_is_an_error(client, backend):
    backend.on("POST", "/vnpay/create-payment-url", json={"success": True})

    with pytest.raises(BackendError):
        await client.create_payment_url("o1", 380000, "Thanh toan don hang o1", "tok")


@pytest.mark.asyncio
async def test_facebook_login_body(client, backend):
    backend.on("POST", "/auth/facebook-login", json={"token": "t", "user": {}})

    await client.oauth_login("facebook", "fb-token", "fb-user")

    assert backend.body(backend.requests[0]) == {"accessToken": "fb-token", "userID": "fb-user"}


@pytest.mark.asyncio
async def test_unknown_oauth_provider(client, backend):
    with pytest.raises(BackendError) as exc:
        await client.oauth_login("zalo", "token")

    assert exc.value.status_code == 400
    assert backend.requests == []


@pytest.mark.asyncio
async def test_wishlist_routes(client, backend):
    backend.on("DELETE", "/wishlist/delete/w1", json={"success": True})
    backend.on("DELETE", "/wishlist/clear", json={"success": True})

    await client.remove_from_wishlist("w1", "tok")
    await client.clear_wishlist("tok", group_id="g1")

    assert backend.requests[1].url.params["group_id"] == "g1"


def test_generic_message_is_vietnamese():
    assert BackendError().message == GENERIC_BACKEND_MESSAGE


@pytest.mark.asyncio
async def test_admin_product_calls_use_admin_audience(client, backend):
    backend.on("PUT", "/products/p1/approve", json={"success": True, "data": {"_id": "p1", "is_approved": True}})
    backend.on("DELETE", "/products/p2", status_code=401, json={"message": "Token expired"})

    approved = await client.review_product("p1", True, "admin-tok")
    with pytest.raises(SessionExpiredError) as exc:
        await client.delete_product("p2", "admin-tok")

    assert approved == {"_id": "p1", "is_approved": True}
    assert backend.requests[0].headers["Authorization"] == "Bearer admin-tok"
    assert exc.value.audience == "admin"


@pytest.mark.asyncio
async def test_create_category_and_post_send_json(client, backend):
    backend.on("POST", "/categories", status_code=201, json={"data": {"_id": "c1", "name": "Gạo đặc sản"}})
    backend.on("PUT", "/posts/n1", json={"data": {"_id": "n1", "status": "Đã tải lên"}})

    category = await client.create_category({"name": "Gạo đặc sản"}, "admin-tok")
    post = await client.update_post("n1", {"status": "Đã tải lên"}, "admin-tok")

    assert category["_id"] == "c1"
    assert post["status"] == "Đã tải lên"
    assert backend.body(backend.calls("POST", "/categories")[0]) == {"name": "Gạo đặc sản"}
    assert backend.body(backend.calls("PUT", "/posts/n1")[0]) == {"status": "Đã tải lên"}


@pytest.mark.asyncio
async def test_create_review_reports_backend_refusal(client, backend):
    backend.on("POST", "/reviews", status_code=403, json={"message": "Bạn cần mua sản phẩm trước khi đánh giá"})

    with pytest.raises(BackendError) as exc:
        await client.create_review({"target_type": "product", "target_id": "A", "rating": 5}, "tok")

    assert exc.value.message == "Bạn cần mua sản phẩm trước khi đánh giá"
    assert exc.value.status_code == 403

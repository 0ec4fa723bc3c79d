import json

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from storefront.core.backend_client import BackendClient
from storefront.db.base import Base
from storefront.db.models import PlacedOrder  # noqa: F401


DATABASE_URL = "sqlite+aiosqlite:///:memory:"
BACKEND_URL = "http://backend.test/api"


class FakeBackend:
    """Canned backend answers keyed by (method, path), recording every request."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status_code=200, json=None, handler=None):
        self.routes[(method, path)] = handler or (lambda request: httpx.Response(status_code, json=json))

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == f"/api{path}"]

    def body(self, request):
        return json.loads(request.content)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        return route(request)


@pytest.fixture
async def engine():
    engine = create_async_engine(DATABASE_URL, echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(engine):
    AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def storage():
    return {}


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def client(backend):
    client = BackendClient(base_url=BACKEND_URL, timeout=5, transport=httpx.MockTransport(backend.handle))
    yield client
    await client.close()


@pytest.fixture
def st25():
    return {"_id": "A", "name": "Gạo ST25", "images": ["st25.jpg"], "listedPrice": 200000, "unit": "bao 5kg"}


@pytest.fixture
def customer_user():
    return {"_id": "u1", "email": "an@huonggaoque.vn", "fullName": "Nguyễn Văn An", "role": "user"}

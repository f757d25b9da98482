import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-process stores, fixed test secrets; must be set before bazaar is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["CASHFREE_APP_ID"] = "cf_app"
os.environ["CASHFREE_SECRET_KEY"] = "cf_secret"
os.environ["CASHFREE_WEBHOOK_SECRET"] = "cf_webhook_secret"
os.environ["CASHFREE_BASE_URL"] = "https://cashfree.test/pg"
os.environ["UPI_PAYEE_VPA"] = "bazaar@upi"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["ORDER_CREATE_LIMIT"] = "3"

BUYER_ID = "65a000000000000000000001"
SELLER_ID = "65a000000000000000000002"
STRANGER_ID = "65a000000000000000000003"
LISTING_ID = "65b000000000000000000001"
INACTIVE_LISTING_ID = "65b000000000000000000002"
USD_LISTING_ID = "65b000000000000000000003"

RAZORPAY_KEY_SECRET = "rzp_test_secret"
RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"
CASHFREE_WEBHOOK_SECRET = "cf_webhook_secret"


class FakeRedis:
    """Counter-only stand-in for redis.asyncio used by the rate limiter."""

    def __init__(self) -> None:
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    async def incr(self, key: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True


class _StubRazorpayOrders:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.error: Exception | None = None
        self._n = 0

    def create(self, payload: dict) -> dict:
        if self.error is not None:
            raise self.error
        self.calls.append(payload)
        self._n += 1
        return {
            "id": f"order_RZP{self._n:04d}",
            "amount": payload["amount"],
            "currency": payload["currency"],
            "receipt": payload.get("receipt"),
            "status": "created",
        }


class StubRazorpayClient:
    def __init__(self) -> None:
        self.order = _StubRazorpayOrders()


class CashfreeApi:
    """httpx.MockTransport handler standing in for the Cashfree PG API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.order_status = "ACTIVE"
        self.create_status_code = 200
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        import json
        self.requests.append(request)
        if request.method == "POST" and request.url.path.endswith("/orders"):
            if self.create_status_code != 200:
                return httpx.Response(self.create_status_code, json={"message": "upstream exploded"})
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "order_id": body["order_id"],
                    "payment_session_id": f"session_{body['order_id']}",
                    "order_status": "ACTIVE",
                    "cf_order_id": 90001,
                },
            )
        if request.method == "GET":
            if self.status_code != 200:
                return httpx.Response(self.status_code, json={"message": "not found"})
            order_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"order_id": order_id, "order_status": self.order_status, "cf_order_id": 90001})
        return httpx.Response(404)


@pytest.fixture
def buyer():
    from bazaar.models.catalog import User
    return User(id=BUYER_ID, email="buyer@example.com", name="Asha Buyer", phone="9876543210")


@pytest.fixture
def seller():
    from bazaar.models.catalog import User
    return User(id=SELLER_ID, email="seller@example.com", name="Ravi Seller", upi_handle="ravi@okbank")


@pytest.fixture
def stranger():
    from bazaar.models.catalog import User
    return User(id=STRANGER_ID, email="stranger@example.com", name="Stranger")


@pytest.fixture
def catalog(buyer, seller, stranger):
    from bazaar.models.catalog import Listing
    from bazaar.stores.memory import InMemoryCatalog
    c = InMemoryCatalog()
    for u in (buyer, seller, stranger):
        c.add_user(u)
    c.add_listing(Listing(id=LISTING_ID, title="Road bike", price=500, currency="INR", owner_id=SELLER_ID, images=["img1"]))
    c.add_listing(Listing(id=INACTIVE_LISTING_ID, title="Sold sofa", price=1200, owner_id=SELLER_ID, is_active=False))
    c.add_listing(Listing(id=USD_LISTING_ID, title="Guitar", price=99.995, currency="USD", owner_id=SELLER_ID))
    return c


@pytest.fixture
def order_store():
    from bazaar.stores.memory import InMemoryOrderStore
    return InMemoryOrderStore()


@pytest.fixture
def razorpay_client():
    return StubRazorpayClient()


@pytest.fixture
def cashfree_api():
    return CashfreeApi()


@pytest_asyncio.fixture
async def cashfree_http(cashfree_api) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(cashfree_api)) as http:
        yield http


@pytest.fixture
def providers(catalog, razorpay_client, cashfree_http):
    from bazaar.models.order import ProviderKind
    from bazaar.payments.cashfree_provider import CashfreeProvider
    from bazaar.payments.razorpay_provider import RazorpayProvider
    from bazaar.payments.registry import ProviderRegistry
    from bazaar.payments.upi import UpiProvider
    return ProviderRegistry(
        {
            ProviderKind.UPI: lambda: UpiProvider("bazaar@upi", "Bazaar", catalog=catalog),
            ProviderKind.RAZORPAY: lambda: RazorpayProvider("rzp_test_key", RAZORPAY_KEY_SECRET, client=razorpay_client),
            ProviderKind.CASHFREE: lambda: CashfreeProvider(
                "cf_app", "cf_secret", base_url="https://cashfree.test/pg", http=cashfree_http
            ),
        }
    )


@pytest.fixture
def lifecycle(order_store, catalog, providers):
    from bazaar.services.orders import OrderLifecycle
    return OrderLifecycle(order_store, catalog, providers, default_provider="upi")


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def app(order_store, catalog, providers, fake_redis):
    from bazaar.deps import get_providers, get_redis
    from bazaar.main import app
    from bazaar.stores.base import get_catalog, get_order_store
    app.dependency_overrides[get_order_store] = lambda: order_store
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_providers] = lambda: providers
    app.dependency_overrides[get_redis] = lambda: fake_redis
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac


def session_headers(user) -> dict[str, str]:
    from bazaar.core.security import create_session_cookie
    from bazaar.deps import SESSION_COOKIE_NAME
    value = create_session_cookie({"user_id": user.id, "session_version": user.session_version})
    return {"Cookie": f"{SESSION_COOKIE_NAME}={value}"}

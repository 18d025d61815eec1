"""Shared fixtures: in-memory database, fake Redis, fake payment providers."""

import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["ENVIRONMENT"] = "test"

import json
from decimal import Decimal

import httpx
import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.data.database import create_tables
from storefront.data.models.user import UserModel
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.lock_service import LockService
from storefront.services.nets_client import NetsClient
from storefront.services.paypal_client import PayPalClient
from storefront.services.session_store import SessionStore


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------
@pytest.fixture()
async def redis_client():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture()
def session_store(redis_client):
    return SessionStore(client=redis_client)


@pytest.fixture()
def lock_service(redis_client):
    return LockService(client=redis_client)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_user(db):
    async def _make(user_id=1, username="alice", email="alice@example.com", address="1 Orchard Road", role="user"):
        return await UserRepo(db).create_user(
            UserModel(id=user_id, username=username, email=email, address=address, role=role)
        )

    return _make


@pytest.fixture()
def make_product(db):
    async def _make(name="Widget", quantity=5, price="10.00", image=None):
        return await ProductRepo(db).create_product(name, quantity, Decimal(price), image)

    return _make


@pytest.fixture()
def put_in_cart(db):
    """Writes a cart row directly, skipping the cap and stock checks of CartService."""

    async def _put(user_id, product, quantity):
        return await CartRepo(db).upsert_item(user_id, product.id, quantity, product.price)

    return _put


class RecordingNotifications:
    def __init__(self):
        self.sent = []

    def send_order_notification(self, user_id, order_id, total, warning=None):
        self.sent.append({"user_id": user_id, "order_id": order_id, "total": total, "warning": warning})
        return True


@pytest.fixture()
def notifications():
    return RecordingNotifications()


# ---------------------------------------------------------------------------
# Payment providers
# ---------------------------------------------------------------------------
def paypal_capture_body(status="COMPLETED", amount="30.00", capture_id="CAP-1"):
    return {
        "id": "PAYPAL-ORDER-1",
        "status": status,
        "payer": {"payer_id": "PAYER-1", "email_address": "buyer@example.com"},
        "purchase_units": [
            {
                "payments": {
                    "captures": [
                        {
                            "id": capture_id,
                            "status": status,
                            "amount": {"value": amount, "currency_code": "SGD"},
                            "create_time": "2024-05-01T10:00:00Z",
                        }
                    ]
                }
            }
        ],
    }


class FakePayPal:
    """Answers the PayPal REST calls the client makes."""

    def __init__(self):
        self.create_body = {"id": "PAYPAL-ORDER-1", "status": "CREATED"}
        self.capture_body = paypal_capture_body()
        self.capture_status_code = 201
        self.refund_body = {"id": "REFUND-1", "status": "COMPLETED"}
        self.refund_status_code = 201
        self.requests: list[httpx.Request] = []

    def paths(self):
        return [r.url.path for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "test-token", "expires_in": 3600})
        if path == "/v2/checkout/orders":
            return httpx.Response(201, json=self.create_body)
        if path.endswith("/capture"):
            return httpx.Response(self.capture_status_code, json=self.capture_body)
        if path.endswith("/refund"):
            return httpx.Response(self.refund_status_code, json=self.refund_body)
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def client(self) -> PayPalClient:
        return PayPalClient(
            base_url="https://paypal.test",
            client_id="client-id",
            client_secret="client-secret",
            http=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


def nets_body(**data):
    return {"result": {"data": data}}


NETS_PENDING = nets_body(response_code="00", txn_status=0)
NETS_PAID = nets_body(response_code="00", txn_status=1)
NETS_DECLINED = nets_body(response_code="00", txn_status=2)


class FakeNets:
    """Answers NETS QR request/query calls; query answers are served in order, the last one repeats."""

    def __init__(self):
        self.qr_body = nets_body(
            response_code="00",
            txn_status=1,
            qr_code="iVBORw0KGgo=",
            txn_retrieval_ref="REF-123",
            network_status=0,
        )
        self.query_bodies = [NETS_PAID]
        self.query_error = False
        self.query_text = None
        self.queries: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if request.url.path.endswith("/request"):
            return httpx.Response(200, json=self.qr_body)
        if request.url.path.endswith("/query"):
            self.queries.append(body)
            if self.query_error:
                raise httpx.ConnectError("connection refused", request=request)
            if self.query_text is not None:
                return httpx.Response(200, text=self.query_text)
            answer = self.query_bodies[0] if len(self.query_bodies) == 1 else self.query_bodies.pop(0)
            return httpx.Response(200, json=answer)
        return httpx.Response(404)

    def client(self) -> NetsClient:
        return NetsClient(
            base_url="https://nets.test/nets-qr",
            api_key="key",
            project_id="project",
            http=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


@pytest.fixture()
def fake_paypal():
    return FakePayPal()


@pytest.fixture()
async def paypal(fake_paypal):
    client = fake_paypal.client()
    yield client
    await client.aclose()


@pytest.fixture()
def fake_nets():
    return FakeNets()


@pytest.fixture()
async def nets(fake_nets):
    client = fake_nets.client()
    yield client
    await client.aclose()

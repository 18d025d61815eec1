"""HTTP surface, driven through the ASGI app with providers and stores overridden."""

import json

import httpx
import pytest

from storefront.api import deps
from storefront.data.database import get_db
from storefront.main import create_app
from storefront.services.nets_service import NetsStatusPoller
from tests.conftest import NETS_PAID, NETS_PENDING


async def no_sleep(_seconds):
    return None


@pytest.fixture()
def app(session_factory, session_store, lock_service, paypal, nets):
    app = create_app(create_schema=False)

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[deps.get_session_store] = lambda: session_store
    app.dependency_overrides[deps.get_lock_service] = lambda: lock_service
    app.dependency_overrides[deps.get_paypal_client] = lambda: paypal
    app.dependency_overrides[deps.get_nets_client] = lambda: nets
    app.dependency_overrides[deps.get_nets_poller] = lambda: NetsStatusPoller(nets, interval=0, max_polls=3, sleep=no_sleep)
    return app


@pytest.fixture()
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture()
async def shopper(client):
    resp = await client.post(
        "/users",
        json={"id": 1, "username": "alice", "email": "alice@example.com", "address": "1 Orchard Road"},
    )
    assert resp.status_code == 200
    return resp.json()


class TestHealthAndUsers:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.json() == {"status": "ok"}

    async def test_create_and_read_user(self, client, shopper):
        resp = await client.get("/users/1")
        assert resp.status_code == 200
        assert resp.json()["address"] == "1 Orchard Road"
        assert resp.json()["role"] == "user"

    async def test_unknown_user(self, client):
        resp = await client.get("/users/99")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "user_not_found"


class TestCatalogAndCart:
    async def test_catalog_hides_sold_out(self, client, make_product):
        await make_product(name="Kept", quantity=1)
        await make_product(name="Gone", quantity=0)

        resp = await client.get("/products")
        assert [p["product_name"] for p in resp.json()] == ["Kept"]

        resp = await client.get("/products", params={"include_out_of_stock": True})
        assert len(resp.json()) == 2

    async def test_unknown_product(self, client):
        resp = await client.get("/products/404")
        assert resp.status_code == 404

    async def test_cart_lifecycle(self, client, shopper, make_product):
        product = await make_product(quantity=3, price="2.50")

        resp = await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id, "quantity": 5})
        assert resp.status_code == 200
        assert resp.json()["items"][0]["quantity"] == 3
        assert resp.json()["notice"] == "Only 3 left in stock."

        resp = await client.post(f"/cart/items/{product.id}/decrease", params={"user_id": 1})
        assert resp.json()["items"][0]["quantity"] == 2
        assert resp.json()["total"] == "5.00"

        resp = await client.delete(f"/cart/items/{product.id}", params={"user_id": 1})
        assert resp.json()["items"] == []

    async def test_add_sold_out_product(self, client, shopper, make_product):
        product = await make_product(quantity=0)

        resp = await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id})
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "out_of_stock"

    async def test_invalid_item_payload(self, client, shopper):
        resp = await client.post("/cart/items", params={"user_id": 1}, json={"product_id": 0, "quantity": 1})
        assert resp.status_code == 422


class TestOrders:
    async def test_checkout_and_history(self, client, shopper, make_product):
        product = await make_product(name="A", quantity=5, price="10.00")
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id, "quantity": 3})

        resp = await client.post("/orders", params={"user_id": 1})
        assert resp.status_code == 201
        body = resp.json()
        assert body["total"] == "30.00"
        assert body["warning"] is None
        order_id = body["order_id"]

        resp = await client.get("/cart", params={"user_id": 1})
        assert resp.json()["items"] == []

        resp = await client.get("/orders", params={"user_id": 1})
        assert [(o["id"], o["payment_method"]) for o in resp.json()] == [(order_id, "Unknown")]

        resp = await client.get(f"/orders/{order_id}", params={"user_id": 1})
        assert resp.json()["grand_total"] == "30.00"
        assert resp.json()["items"][0]["product_name"] == "A"

    async def test_empty_cart_checkout(self, client, shopper):
        resp = await client.post("/orders", params={"user_id": 1})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "empty_cart"

    async def test_depleted_cart_checkout(self, client, shopper, make_product, put_in_cart):
        product = await make_product(name="B", quantity=0)
        await put_in_cart(1, product, 1)

        resp = await client.post("/orders", params={"user_id": 1})
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["error"] == "cart_depleted"
        assert detail["removed_items"] == [{"product_id": product.id, "name": "B"}]

    async def test_other_users_order_is_forbidden(self, client, shopper, make_product):
        product = await make_product()
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id})
        order_id = (await client.post("/orders", params={"user_id": 1})).json()["order_id"]

        resp = await client.get(f"/orders/{order_id}", params={"user_id": 2})
        assert resp.status_code == 403

    async def test_refund_needs_admin(self, client, shopper, make_product):
        product = await make_product()
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id})
        await client.post("/payments/paypal/capture", params={"user_id": 1}, json={"order_id": "PAYPAL-ORDER-1"})
        order_id = (await client.get("/orders", params={"user_id": 1})).json()[0]["id"]

        resp = await client.post(f"/orders/{order_id}/refund", params={"user_id": 1}, json={"reason": "mine"})
        assert resp.status_code == 403

        await client.post("/users", json={"id": 9, "username": "admin", "role": "admin"})
        resp = await client.post(f"/orders/{order_id}/refund", params={"user_id": 9}, json={"reason": "damaged"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "REFUNDED"
        assert resp.json()["refund_reason"] == "damaged"


class TestPayPalFlow:
    async def test_create_and_capture(self, client, shopper, make_product):
        product = await make_product(quantity=5, price="10.00")
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id, "quantity": 3})

        resp = await client.post("/payments/paypal/orders", params={"user_id": 1})
        assert resp.json() == {"order_id": "PAYPAL-ORDER-1"}

        resp = await client.post("/payments/paypal/capture", params={"user_id": 1}, json={"order_id": "PAYPAL-ORDER-1"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["transaction"]["status"] == "COMPLETED"
        assert body["transaction"]["capture_id"] == "CAP-1"
        assert body["message"] == "Payment successful and order created"

        resp = await client.get("/orders", params={"user_id": 1})
        assert resp.json()[0]["payment_method"] == "PayPal"
        assert resp.json()[0]["payment_reference"] == "CAP-1"

    async def test_capture_not_completed(self, client, shopper, make_product, fake_paypal):
        product = await make_product()
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id})
        fake_paypal.capture_body = {"status": "PAYER_ACTION_REQUIRED"}

        resp = await client.post("/payments/paypal/capture", params={"user_id": 1}, json={"order_id": "PAYPAL-ORDER-1"})
        assert resp.status_code == 402
        assert resp.json()["detail"]["status"] == "PAYER_ACTION_REQUIRED"


class TestNetsFlow:
    async def test_qr_status_stream_and_complete(self, client, shopper, make_product, fake_nets):
        product = await make_product(quantity=5, price="10.00")
        await client.post("/cart/items", params={"user_id": 1}, json={"product_id": product.id, "quantity": 2})

        resp = await client.post("/payments/nets/qr", params={"user_id": 1}, json={})
        assert resp.status_code == 200
        assert resp.json()["txn_retrieval_ref"] == "REF-123"
        assert resp.json()["qr_code_url"].startswith("data:image/png;base64,")

        fake_nets.query_bodies = [NETS_PENDING, NETS_PAID]
        resp = await client.get("/payments/nets/status/REF-123")
        assert resp.headers["content-type"].startswith("text/event-stream")
        frames = [json.loads(line[len("data: "):]) for line in resp.text.split("\n\n") if line]
        assert frames == [NETS_PENDING, NETS_PAID, {"success": True}]

        resp = await client.post("/payments/nets/complete", params={"user_id": 1})
        assert resp.status_code == 201
        assert resp.json()["transaction"]["payer_id"] == "NETS"
        assert resp.json()["total"] == "20.00"

        resp = await client.get("/orders", params={"user_id": 1})
        assert resp.json()[0]["payment_method"] == "NETS QR"

    async def test_stream_times_out(self, client, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING]

        resp = await client.get("/payments/nets/status/REF-123")

        frames = [json.loads(line[len("data: "):]) for line in resp.text.split("\n\n") if line]
        assert frames[-1] == {"fail": True, "error": "Timeout"}
        assert len(frames) == 5

    async def test_complete_without_qr(self, client, shopper):
        resp = await client.post("/payments/nets/complete", params={"user_id": 1})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "no_pending_payment"

"""QR payment flow: QR issue, status polling state machine, completion."""

from decimal import Decimal

import pytest

from storefront.domain.errors import (
    EmptyCartError,
    InvalidAmountError,
    NoPendingPaymentError,
    PaymentNotCompletedError,
    PaymentProviderError,
    QrRequestError,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services import nets_service
from storefront.services.nets_service import NetsPaymentService, NetsStatusPoller, PollState
from tests.conftest import NETS_DECLINED, NETS_PAID, NETS_PENDING, nets_body


async def no_sleep(_seconds):
    return None


async def _collect(poller, ref="REF-123", is_disconnected=None):
    return [event async for event in poller.events(ref, is_disconnected)]


@pytest.fixture()
def qr(db, session_store, nets, lock_service, notifications):
    return NetsPaymentService(db, session_store, nets, lock_service, notifications)


class TestStatusPoller:
    async def test_confirmed(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING, NETS_PAID]
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        events = await _collect(poller)

        assert events == [NETS_PENDING, NETS_PAID, {"success": True}]
        assert poller.state is PollState.CONFIRMED
        assert poller.poll_count == 2
        assert poller.done

    async def test_timed_out_after_one_flagged_query(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING]
        poller = NetsStatusPoller(nets, interval=0, max_polls=3, sleep=no_sleep)

        events = await _collect(poller)

        assert events[-1] == {"fail": True, "error": "Timeout"}
        assert poller.state is PollState.TIMED_OUT
        assert [q["frontend_timeout_status"] for q in fake_nets.queries] == [0, 0, 0, 1]
        assert all(q["txn_retrieval_ref"] == "REF-123" for q in fake_nets.queries)

    async def test_failed_once_flag_is_raised(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING, NETS_PENDING, NETS_DECLINED]
        poller = NetsStatusPoller(nets, interval=0, max_polls=2, sleep=no_sleep)

        events = await _collect(poller)

        assert events[-1] == {"fail": True, "response_code": "00", "txn_status": 2}
        assert poller.state is PollState.FAILED
        assert poller.poll_count == 3

    async def test_decline_before_the_bound_keeps_polling(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_DECLINED, NETS_PAID]
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        events = await _collect(poller)

        assert events[-1] == {"success": True}
        assert poller.state is PollState.CONFIRMED

    async def test_paid_on_the_flagged_query(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING, NETS_PAID]
        poller = NetsStatusPoller(nets, interval=0, max_polls=1, sleep=no_sleep)

        events = await _collect(poller)

        assert events[-1] == {"success": True}
        assert [q["frontend_timeout_status"] for q in fake_nets.queries] == [0, 1]

    async def test_transport_error_stops_without_retry(self, nets, fake_nets):
        fake_nets.query_error = True
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        events = await _collect(poller)

        assert len(events) == 1
        assert "error" in events[0]
        assert poller.state is PollState.ERRORED
        assert len(fake_nets.queries) == 1

    async def test_non_json_answer_stops_with_error(self, nets, fake_nets):
        fake_nets.query_text = "<html>maintenance</html>"
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        events = await _collect(poller)

        assert events == [{"error": "NETS answered with a non-JSON body"}]
        assert poller.state is PollState.ERRORED
        assert poller.done
        assert len(fake_nets.queries) == 1

    async def test_result_that_is_not_an_object_stops_with_error(self, nets, fake_nets):
        fake_nets.query_bodies = [{"result": "maintenance"}]
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        events = await _collect(poller)

        assert events == [{"error": "NETS answered with an unexpected payload"}]
        assert poller.state is PollState.ERRORED

    async def test_client_disconnect_cancels_before_querying(self, nets, fake_nets):
        poller = NetsStatusPoller(nets, interval=0, max_polls=5, sleep=no_sleep)

        async def gone():
            return True

        assert await _collect(poller, is_disconnected=gone) == []
        assert poller.state is PollState.CANCELLED
        assert fake_nets.queries == []

    async def test_waits_one_interval_per_attempt(self, nets, fake_nets):
        fake_nets.query_bodies = [NETS_PENDING, NETS_PENDING, NETS_PAID]
        waits = []

        async def record(seconds):
            waits.append(seconds)

        poller = NetsStatusPoller(nets, interval=5, max_polls=60, sleep=record)
        await _collect(poller)

        assert waits == [5, 5, 5]


class TestRequestQr:
    async def test_issues_qr_and_stores_pending_marker(self, qr, session_store, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product(quantity=5, price="4.20")
        await put_in_cart(1, product, 2)

        issued = await qr.request_qr(1, address="5 Changi Road")

        assert issued["total"] == Decimal("8.40")
        assert issued["qr_code_url"] == "data:image/png;base64,iVBORw0KGgo="
        assert issued["txn_retrieval_ref"] == "REF-123"
        assert issued["timer_seconds"] == 300
        assert await session_store.get_pending_payment(1) == {
            "amount": "8.40",
            "txn_retrieval_ref": "REF-123",
            "address": "5 Changi Road",
        }

    async def test_refused_by_provider(self, qr, fake_nets, session_store, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product()
        await put_in_cart(1, product, 1)
        fake_nets.qr_body = nets_body(
            response_code="68",
            txn_status=0,
            network_status=1,
            error_message="Merchant is not active",
            instruction="Contact the merchant",
        )

        with pytest.raises(QrRequestError) as exc:
            await qr.request_qr(1)

        assert exc.value.message == "Merchant is not active"
        assert exc.value.detail["response_code"] == "68"
        assert exc.value.detail["instructions"] == "Contact the merchant"
        assert await session_store.get_pending_payment(1) is None

    async def test_missing_qr_payload(self, qr, fake_nets, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product()
        await put_in_cart(1, product, 1)
        fake_nets.qr_body = nets_body(response_code="00", txn_status=1, network_status=0)

        with pytest.raises(QrRequestError) as exc:
            await qr.request_qr(1)

        assert exc.value.message == "An error occurred while generating the QR code."

    async def test_empty_cart(self, qr, make_user):
        await make_user()

        with pytest.raises(EmptyCartError):
            await qr.request_qr(1)

    async def test_zero_total(self, qr, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product(price="0.00")
        await put_in_cart(1, product, 1)

        with pytest.raises(InvalidAmountError):
            await qr.request_qr(1)


class TestCompleteQrPayment:
    async def test_confirmed_payment_places_order(self, db, qr, session_store, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product(quantity=5, price="10.00")
        await put_in_cart(1, product, 3)
        await qr.request_qr(1, address="5 Changi Road")

        result, txn = await qr.complete_payment(1)

        assert result.total == Decimal("30.00")
        assert txn.status == "COMPLETED"
        assert txn.capture_id == "REF-123"
        assert txn.payer_id == "NETS"
        assert txn.payer_email == "alice@example.com"
        assert txn.currency == "SGD"
        assert txn.amount == Decimal("30.00")
        assert (await OrderRepo(db).get_order(result.order_id)).address == "5 Changi Road"
        assert (await ProductRepo(db).get_product(product.id)).quantity == 2
        assert await CartRepo(db).get_cart_items(1) == []
        assert await session_store.get_pending_payment(1) is None

    async def test_cart_changed_after_qr_is_logged(self, qr, make_user, make_product, put_in_cart, monkeypatch):
        await make_user()
        first = await make_product(name="Widget", price="10.00")
        await put_in_cart(1, first, 1)
        await qr.request_qr(1)
        second = await make_product(name="Gadget", price="5.00")
        await put_in_cart(1, second, 1)
        warnings = []

        class RecordingLogger:
            def warning(self, message, *args, **kwargs):
                warnings.append(message)

            def __getattr__(self, name):
                return lambda *args, **kwargs: None

        monkeypatch.setattr(nets_service, "logger", RecordingLogger())

        result, txn = await qr.complete_payment(1)

        assert result.total == Decimal("15.00")
        assert txn.amount == Decimal("15.00")
        assert warnings == ["Cart total 15.00 differs from QR amount 10.00 (REF-123)"]

    async def test_profile_address_and_unknown_email(self, db, qr, make_user, make_product, put_in_cart):
        await make_user(email=None)
        product = await make_product()
        await put_in_cart(1, product, 1)
        await qr.request_qr(1)

        result, txn = await qr.complete_payment(1)

        assert txn.payer_email == "unknown@customer.local"
        assert (await OrderRepo(db).get_order(result.order_id)).address == "1 Orchard Road"

    async def test_failed_decrement_marks_transaction(self, qr, make_user, make_product, put_in_cart, monkeypatch):
        await make_user()
        product = await make_product(quantity=5)
        await put_in_cart(1, product, 1)
        await qr.request_qr(1)

        async def nothing_left(product_id, quantity):
            return 0

        monkeypatch.setattr(qr.checkout.products, "decrement_stock", nothing_left)

        result, txn = await qr.complete_payment(1)

        assert txn.status == "COMPLETED_WITH_WARNINGS"
        assert len(result.failed_decrements) == 1

    async def test_without_pending_marker(self, qr, make_user):
        await make_user()

        with pytest.raises(NoPendingPaymentError):
            await qr.complete_payment(1)

    async def test_provider_must_confirm(self, db, qr, fake_nets, session_store, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product(quantity=5)
        await put_in_cart(1, product, 1)
        await qr.request_qr(1)
        fake_nets.query_bodies = [NETS_PENDING]

        with pytest.raises(PaymentNotCompletedError):
            await qr.complete_payment(1)

        assert await OrderRepo(db).get_orders_by_user(1) == []
        assert (await ProductRepo(db).get_product(product.id)).quantity == 5
        assert await session_store.get_pending_payment(1) is not None

    async def test_unreadable_confirmation_is_a_provider_error(self, db, qr, fake_nets, session_store, make_user, make_product, put_in_cart):
        await make_user()
        product = await make_product(quantity=5)
        await put_in_cart(1, product, 1)
        await qr.request_qr(1)
        fake_nets.query_text = "<html>maintenance</html>"

        with pytest.raises(PaymentProviderError) as exc:
            await qr.complete_payment(1)

        assert exc.value.body == "<html>maintenance</html>"
        assert await OrderRepo(db).get_orders_by_user(1) == []
        assert (await ProductRepo(db).get_product(product.id)).quantity == 5
        assert await session_store.get_pending_payment(1) is not None

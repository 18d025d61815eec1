# storefront/services/nets_service.py
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.transaction import TransactionModel
from storefront.domain.errors import (
    InvalidAmountError,
    NoPendingPaymentError,
    PaymentNotCompletedError,
    PaymentProviderError,
    QrRequestError,
)
from storefront.domain.types import (
    NETS_PAYER_ID,
    CheckoutResult,
    OrderId,
    PaymentRecord,
    TransactionStatus,
    UserId,
    money,
)
from storefront.services.checkout_service import CheckoutService
from storefront.services.lock_service import LockService
from storefront.services.nets_client import NetsClient
from storefront.services.notification_service import NotificationService
from storefront.services.session_store import SessionStore
from storefront.utils.settings import (
    NETS_POLL_INTERVAL_SECONDS,
    NETS_MAX_POLLS,
    NETS_QR_TIMER_SECONDS,
    PAYMENT_CURRENCY,
    UNKNOWN_PAYER_EMAIL,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class PollState(str, Enum):
    ISSUED = "ISSUED"
    POLLING = "POLLING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ERRORED = "ERRORED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = {
    PollState.CONFIRMED,
    PollState.FAILED,
    PollState.TIMED_OUT,
    PollState.ERRORED,
    PollState.CANCELLED,
}


class NetsStatusPoller:
    """
    Polls the provider for one retrieval reference and yields the events the
    status stream sends to the browser.

    ISSUED -> POLLING -> CONFIRMED | FAILED | TIMED_OUT | ERRORED | CANCELLED

    One query per ``interval``. After ``max_polls`` attempts the frontend
    timeout flag is raised and exactly one more query is made with it. A
    transport error ends the stream at once, nothing is retried.
    """

    def __init__(
        self,
        client: NetsClient,
        interval: float = NETS_POLL_INTERVAL_SECONDS,
        max_polls: int = NETS_MAX_POLLS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.interval = interval
        self.max_polls = max_polls
        self.sleep = sleep
        self.state = PollState.ISSUED
        self.poll_count = 0

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    async def events(
        self,
        txn_retrieval_ref: str,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[dict]:
        self.state = PollState.POLLING
        frontend_timeout_status = 0

        while True:
            await self.sleep(self.interval)

            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Client left, stop polling {txn_retrieval_ref}")
                self.state = PollState.CANCELLED
                return

            self.poll_count += 1
            try:
                result = await self.client.query(txn_retrieval_ref, frontend_timeout_status)
            except PaymentProviderError as e:
                logger.error(f"NETS query for {txn_retrieval_ref} failed: {e.message}")
                self.state = PollState.ERRORED
                yield {"error": e.message}
                return

            yield result.raw

            if result.succeeded:
                logger.info(f"NETS payment {txn_retrieval_ref} confirmed after {self.poll_count} polls")
                self.state = PollState.CONFIRMED
                yield {"success": True}
                return

            if frontend_timeout_status == 1:
                if result.failed:
                    self.state = PollState.FAILED
                    yield {"fail": True, **result.data}
                else:
                    self.state = PollState.TIMED_OUT
                    yield {"fail": True, "error": "Timeout"}
                return

            if self.poll_count >= self.max_polls:
                # one last query goes out with the flag raised
                logger.info(f"NETS payment {txn_retrieval_ref} reached {self.max_polls} polls, raising timeout flag")
                frontend_timeout_status = 1


class NetsPaymentService:
    """
    QR payment flow: issue a QR code for the cart total, then, once the
    provider confirms the payment, turn the cart into an order.
    """

    def __init__(
        self,
        db: AsyncSession,
        session_store: SessionStore,
        nets: NetsClient,
        lock_service: LockService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.nets = nets
        self.session_store = session_store
        self.checkout = CheckoutService(db, session_store, lock_service, notifications)

    async def request_qr(self, user_id: UserId, address: str | None = None) -> dict:
        lines = await self.checkout.load_cart(user_id)
        total = self.checkout.cart_total(lines)
        if total <= Decimal("0"):
            raise InvalidAmountError(total)

        logger.info(f"Requesting NETS QR for user {user_id}, amount {total}")
        qr = await self.nets.request_qr(total)

        if not qr.issued:
            message = "An error occurred while generating the QR code."
            if qr.network_status not in (0, None):
                message = qr.error_message or "Transaction failed. Please try again."
            logger.error(f"NETS QR refused for user {user_id}: code {qr.response_code}")
            raise QrRequestError(message, response_code=qr.response_code, instructions=qr.instruction or "")

        await self.session_store.set_pending_payment(user_id, str(total), qr.txn_retrieval_ref, address)

        return {
            "total": total,
            "qr_code_url": f"data:image/png;base64,{qr.qr_code}",
            "txn_retrieval_ref": qr.txn_retrieval_ref,
            "network_status": qr.network_status,
            "timer_seconds": NETS_QR_TIMER_SECONDS,
        }

    async def complete_payment(self, user_id: UserId) -> tuple[CheckoutResult, TransactionModel]:
        pending = await self.session_store.get_pending_payment(user_id)
        if not pending or not pending.get("amount"):
            raise NoPendingPaymentError()
        txn_ref = pending.get("txn_retrieval_ref")

        async with self.checkout.checkout_guard(user_id):
            # the browser says CONFIRMED, the provider has to agree
            status = await self.nets.query(txn_ref)
            if not status.succeeded:
                raise PaymentNotCompletedError(
                    {"response_code": status.response_code, "txn_status": status.txn_status},
                    provider="nets",
                )

            lines = await self.checkout.load_cart(user_id)
            total = self.checkout.cart_total(lines)
            if total != money(pending["amount"]):
                logger.warning(f"Cart total {total} differs from QR amount {pending['amount']} ({txn_ref})")
            address = await self.checkout.profile_address(user_id, override=pending.get("address"))

            order = await self.checkout.create_header(user_id, total, address)
            await self.checkout.save_lines(order.id, lines, address)
            failed = await self.checkout.decrement_stock(lines)

            user = await self.checkout.users.get_user(user_id)
            payment = PaymentRecord(
                capture_id=txn_ref or None,
                payer_id=NETS_PAYER_ID,
                payer_email=(user.email if user and user.email else UNKNOWN_PAYER_EMAIL),
                amount=money(total),
                currency=PAYMENT_CURRENCY,
                time=datetime.now(timezone.utc),
            )
            txn_status = TransactionStatus.COMPLETED_WITH_WARNINGS if failed else TransactionStatus.COMPLETED
            txn = await self.checkout.record_transaction(order.id, payment, txn_status)

            await self.checkout.clear_cart(user_id)
            await self.session_store.clear_pending_payment(user_id)

            result = CheckoutResult(order_id=OrderId(order.id), total=total, failed_decrements=failed)
            self.checkout.notify(user_id, result)
            return result, txn

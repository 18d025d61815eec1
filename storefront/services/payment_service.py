# storefront/services/payment_service.py
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.transaction import TransactionModel
from storefront.domain.errors import (
    InvalidAmountError,
    PaymentNotCompletedError,
    PaymentProviderError,
    UserInputError,
)
from storefront.domain.types import CheckoutResult, OrderId, PaymentRecord, TransactionStatus, UserId
from storefront.services.checkout_service import CheckoutService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.paypal_client import PayPalClient
from storefront.services.session_store import SessionStore
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentService:
    """
    Card payment flow: create a provider order for the cart total, then turn a
    COMPLETED capture into an order.

    The capture only confirms money moved. Line items and the order total
    always come from the live cart.
    """

    def __init__(
        self,
        db: AsyncSession,
        session_store: SessionStore,
        paypal: PayPalClient,
        lock_service: LockService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.paypal = paypal
        self.checkout = CheckoutService(db, session_store, lock_service, notifications)

    async def create_payment_order(self, user_id: UserId) -> str:
        lines = await self.checkout.load_cart(user_id)
        total = self.checkout.cart_total(lines)

        # never send a non-positive amount to the gateway
        if total <= Decimal("0"):
            logger.error(f"Refusing to create PayPal order for user {user_id}: total {total}")
            raise InvalidAmountError(total)

        logger.info(f"Creating PayPal order for user {user_id}, amount {total}")
        provider_order_id = await self.paypal.create_order(total)
        logger.info(f"PayPal order created: {provider_order_id}")
        return provider_order_id

    async def complete_payment(
        self,
        user_id: UserId,
        provider_order_id: str,
        address: str | None = None,
    ) -> tuple[CheckoutResult, TransactionModel]:
        if not provider_order_id:
            raise UserInputError("Order ID is required")

        async with self.checkout.checkout_guard(user_id):
            capture = await self.paypal.capture_order(provider_order_id)

            if not capture.completed:
                raise PaymentNotCompletedError(capture.status)
            if not capture.captures:
                raise PaymentProviderError("PayPal capture has no capture records", provider="paypal", body=capture.raw)

            first = capture.captures[0]
            payment = PaymentRecord(
                capture_id=first.id,
                payer_id=capture.payer.payer_id or "",
                payer_email=capture.payer.email_address,
                amount=first.amount.value,
                currency=first.amount.currency_code,
                time=first.create_time,
            )
            logger.info(f"PayPal capture {first.id} completed for user {user_id}")

            try:
                lines = await self.checkout.load_cart(user_id)
            except UserInputError:
                logger.error(f"Capture {first.id} completed but the cart of user {user_id} is empty")
                raise

            address = await self.checkout.profile_address(user_id, override=address)
            total = self.checkout.cart_total(lines)
            if total != payment.amount:
                logger.warning(f"Cart total {total} differs from captured amount {payment.amount} ({first.id})")

            order = await self.checkout.create_header(user_id, total, address)
            txn = await self.checkout.record_transaction(order.id, payment, TransactionStatus.COMPLETED)
            await self.checkout.save_lines(order.id, lines, address)
            failed = await self.checkout.decrement_stock(lines)

            # only the lines this payment covered
            await self.checkout.clear_cart(user_id, product_ids=[line.product_id for line in lines])

            result = CheckoutResult(order_id=OrderId(order.id), total=total, failed_decrements=failed)
            self.checkout.notify(user_id, result)
            return result, txn

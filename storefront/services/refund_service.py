# storefront/services/refund_service.py
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.transaction import TransactionModel
from storefront.domain.errors import (
    AlreadyRefundedError,
    NoTransactionFoundError,
    OrderNotFoundError,
    PaymentProviderError,
    RefundFailedError,
    UserInputError,
)
from storefront.domain.types import NETS_PAYER_ID, TransactionStatus
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.transaction_repo import TransactionRepo
from storefront.services.paypal_client import PayPalClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class RefundService:
    """
    Refunds the card capture behind an order and returns its lines to stock.

    Only the latest transaction of the order is considered. QR payments have
    no refund path at the provider and are rejected.
    """

    def __init__(self, db: AsyncSession, paypal: PayPalClient):
        self.db = db
        self.paypal = paypal
        self.orders = OrderRepo(db)
        self.products = ProductRepo(db)
        self.transactions = TransactionRepo(db)

    async def refund_order(
        self,
        order_id: int,
        reason: str | None = None,
        amount: Decimal | None = None,
    ) -> TransactionModel:
        if amount is not None and amount <= Decimal("0"):
            raise UserInputError("Refund amount must be greater than zero", amount=str(amount))

        order = await self.orders.get_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        txn = await self.transactions.get_latest_by_order_id(order_id)
        if not txn or not txn.capture_id or txn.payer_id == NETS_PAYER_ID:
            raise NoTransactionFoundError(order_id)
        if txn.status == TransactionStatus.REFUNDED.value:
            raise AlreadyRefundedError(order_id)

        logger.info(f"Refunding capture {txn.capture_id} of order {order_id}, amount {amount or 'full'}")
        try:
            refund = await self.paypal.refund_capture(txn.capture_id, amount)
        except PaymentProviderError as e:
            logger.error(f"Refund of order {order_id} rejected by PayPal: {e.message}")
            raise RefundFailedError(order_id, details=e.body or e.message) from e

        if refund.status != "COMPLETED":
            logger.error(f"Refund of order {order_id} not completed: {refund.status}")
            raise RefundFailedError(order_id, details=refund.raw)

        txn = await self.transactions.update_status(order_id, TransactionStatus.REFUNDED, reason)
        await self.restock(order_id)
        logger.info(f"Order {order_id} refunded")
        return txn

    async def restock(self, order_id: int) -> None:
        """Put every ordered unit back. The refund already happened, so a failed line is only logged."""
        for detail, _name in await self.orders.get_order_items(order_id):
            try:
                restocked = await self.products.increment_stock(detail.product_id, detail.quantity)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to restock product {detail.product_id} for refunded order {order_id}: {e}")
                continue
            if not restocked:
                logger.warning(f"Product {detail.product_id} of refunded order {order_id} no longer exists, not restocked")

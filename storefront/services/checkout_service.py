# storefront/services/checkout_service.py
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Iterable

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.order import OrderModel
from storefront.data.models.transaction import TransactionModel
from storefront.domain.errors import (
    EmptyCartError,
    CartDepletedError,
    CheckoutInProgressError,
    ProductNotFoundError,
    OrderItemsNotSavedError,
    TransactionNotRecordedError,
)
from storefront.domain.types import (
    AdjustedItem,
    CartLine,
    CheckoutResult,
    FailedDecrement,
    OrderId,
    PaymentRecord,
    RemovedItem,
    TransactionStatus,
    UserId,
    money,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.transaction_repo import TransactionRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.session_store import SessionStore
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Turns a user's cart into an order.

    Steps run strictly in order: load cart, reconcile every line against live
    stock, create the order header, insert the lines, decrement stock, clear
    the cart. The header is the durability boundary. Anything failing before
    it aborts with no writes except the cart adjustments already applied;
    anything failing after it is reported, never rolled back.

    The step methods are public so the payment flows can compose them in
    the order their provider requires.
    """

    def __init__(
        self,
        db: AsyncSession,
        session_store: SessionStore,
        lock_service: LockService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.carts = CartRepo(db)
        self.products = ProductRepo(db)
        self.orders = OrderRepo(db)
        self.transactions = TransactionRepo(db)
        self.users = UserRepo(db)
        self.session_store = session_store
        self.lock_service = lock_service
        self.notifications = notifications or NotificationService()

    async def create_order(self, user_id: UserId) -> CheckoutResult:
        """
        Use Case: order from the current cart (no payment provider involved).

        Raises EmptyCartError, ProductNotFoundError, CartDepletedError before
        any order write; OrderItemsNotSavedError once the header exists.
        A non-empty ``failed_decrements`` in the result means the order
        stands but inventory needs a look.
        """
        async with self.checkout_guard(user_id):
            lines = await self.load_cart(user_id)
            lines, removed, adjusted = await self.reconcile(user_id, lines)

            if not lines:
                logger.info(f"Cart of user {user_id} depleted during reconciliation")
                raise CartDepletedError(removed, adjusted)

            total = self.cart_total(lines)
            address = await self.profile_address(user_id)

            order = await self.create_header(user_id, total, address)
            await self.save_lines(order.id, lines, address)
            failed = await self.decrement_stock(lines)
            await self.clear_cart(user_id)

            result = CheckoutResult(
                order_id=OrderId(order.id),
                total=total,
                removed_items=removed,
                adjusted_items=adjusted,
                failed_decrements=failed,
            )
            self.notify(user_id, result)
            return result

    # -- guard ------------------------------------------------------------------

    @asynccontextmanager
    async def checkout_guard(self, user_id: UserId) -> AsyncIterator[None]:
        """Single-flight per user: a second concurrent submit fails fast."""
        if self.lock_service is None:
            yield
            return

        token = await self.lock_service.acquire_checkout_lock(user_id)
        if not token:
            raise CheckoutInProgressError(user_id)
        try:
            yield
        finally:
            try:
                await self.lock_service.release_checkout_lock(user_id, token)
            except RedisError as e:
                # lock expires on its own after the TTL
                logger.warning(f"Could not release checkout lock of user {user_id}: {e}")

    # -- steps ------------------------------------------------------------------

    async def load_cart(self, user_id: UserId) -> list[CartLine]:
        items = await self.carts.get_cart_items(user_id)
        if not items:
            raise EmptyCartError()
        return [CartLine.from_model(i) for i in items]

    async def reconcile(
        self,
        user_id: UserId,
        lines: list[CartLine],
    ) -> tuple[list[CartLine], list[RemovedItem], list[AdjustedItem]]:
        """Evict sold out lines, clamp lines above live stock. Runs over every line before returning."""
        kept: list[CartLine] = []
        removed: list[RemovedItem] = []
        adjusted: list[AdjustedItem] = []

        try:
            for line in lines:
                product = await self.products.get_product(line.product_id)
                if not product:
                    raise ProductNotFoundError(line.product_id)

                available = int(product.quantity or 0)
                want = line.quantity
                name = product.product_name or ""

                if available <= 0:
                    await self.carts.remove(user_id, line.product_id)
                    removed.append(RemovedItem(product_id=line.product_id, name=name))
                    logger.info(f"Evicted product {line.product_id} from cart of user {user_id}: out of stock")
                elif want > available:
                    price = line.price if line.price is not None else money(product.price)
                    line.price = price
                    line.set_quantity(available)
                    await self.carts.update_quantity(user_id, line.product_id, available, price)
                    adjusted.append(AdjustedItem(product_id=line.product_id, name=name, old=want, now=available))
                    logger.info(f"Clamped product {line.product_id} from {want} to {available} for user {user_id}")
                    kept.append(line)
                else:
                    kept.append(line)
        finally:
            if removed or adjusted:
                await self.invalidate_session_cart(user_id)

        return kept, removed, adjusted

    @staticmethod
    def cart_total(lines: Iterable[CartLine]) -> Decimal:
        return money(sum((line.total for line in lines), Decimal("0.00")))

    async def profile_address(self, user_id: UserId, override: str | None = None) -> str | None:
        if override and override.strip():
            return override.strip()
        user = await self.users.get_user(user_id)
        return user.address if user and user.address else None

    async def create_header(self, user_id: UserId, total: Decimal, address: str | None) -> OrderModel:
        order = await self.orders.create_order(user_id, total, address)
        logger.info(f"Order {order.id} created for user {user_id}, total {total}")
        return order

    async def save_lines(self, order_id: int, lines: list[CartLine], address: str | None) -> None:
        try:
            await self.orders.add_order_items(order_id, lines, address)
        except SQLAlchemyError as e:
            logger.error(f"Order {order_id} created but its items failed to save: {e}")
            raise OrderItemsNotSavedError(order_id) from e

    async def record_transaction(
        self,
        order_id: int,
        payment: PaymentRecord,
        status: TransactionStatus,
    ) -> TransactionModel:
        try:
            txn = await self.transactions.create(order_id, payment, status)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Order {order_id}: transaction {payment.capture_id} from {payment.payer_id} "
                f"({payment.amount} {payment.currency}) failed to save: {e}"
            )
            raise TransactionNotRecordedError(order_id, payment.capture_id) from e
        logger.info(f"Transaction {txn.id} recorded for order {order_id} with status {status.value}")
        return txn

    async def decrement_stock(self, lines: Iterable[CartLine]) -> list[FailedDecrement]:
        """Conditional decrement per line. Failures are collected, never retried, never fatal."""
        failed: list[FailedDecrement] = []
        for line in lines:
            try:
                affected = await self.products.decrement_stock(line.product_id, line.quantity)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to decrement stock for {line.product_id}: {e}")
                failed.append(FailedDecrement(product_id=line.product_id, quantity=line.quantity, error=str(e)))
                continue

            if not affected:
                logger.error(f"Stock not decremented (insufficient quantity) for {line.product_id}, wanted {line.quantity}")
                failed.append(FailedDecrement(product_id=line.product_id, quantity=line.quantity))
            else:
                logger.info(f"Stock decremented for {line.product_id} by {line.quantity}")

        if failed:
            logger.warning(f"{len(failed)} stock decrements failed: {failed}")
        return failed

    async def clear_cart(self, user_id: UserId, product_ids: list[int] | None = None) -> None:
        """Drop the whole cart, or only ``product_ids``. The order is durable already, so errors are only logged."""
        try:
            if product_ids is None:
                await self.carts.clear(user_id)
            else:
                await self.carts.remove_bulk(user_id, product_ids)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to clear cart of user {user_id} after order: {e}")
        await self.invalidate_session_cart(user_id)

    async def invalidate_session_cart(self, user_id: UserId) -> None:
        try:
            await self.session_store.invalidate_cart(user_id)
        except RedisError as e:
            logger.error(f"Failed to reset session cart of user {user_id}: {e}")

    def notify(self, user_id: UserId, result: CheckoutResult) -> None:
        self.notifications.send_order_notification(user_id, result.order_id, result.total, result.warning)

# storefront/services/order_service.py
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.transaction import TransactionModel
from storefront.domain.errors import OrderNotFoundError
from storefront.domain.types import NETS_PAYER_ID, UserId, money
from storefront.repos.order_repo import OrderRepo
from storefront.repos.transaction_repo import TransactionRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def payment_method(txn: TransactionModel | None) -> str:
    if txn is None:
        return "Unknown"
    if txn.payer_id == NETS_PAYER_ID:
        return "NETS QR"
    if txn.payer_id or txn.payer_email:
        return "PayPal"
    return "Unknown"


def payment_reference(txn: TransactionModel | None) -> str:
    if txn is None:
        return "N/A"
    return txn.capture_id or txn.payer_id or "N/A"


class OrderService:
    """
    Order queries (read side). Orders are only ever written by checkout.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = OrderRepo(db)
        self.transactions = TransactionRepo(db)

    async def list_orders(self, user_id: UserId) -> list[dict]:
        """
        Use Case: order history of a user, newest first, with how each was paid.
        """
        orders = await self.repo.get_orders_by_user(user_id)
        txns = await self.transactions.get_latest_by_order_ids(o.id for o in orders)

        return [
            {
                "id": order.id,
                "total": money(order.total),
                "address": order.address,
                "created_at": order.created_at,
                "payment_method": payment_method(txns.get(order.id)),
                "payment_reference": payment_reference(txns.get(order.id)),
            }
            for order in orders
        ]

    async def get_order(self, order_id: int, user_id: UserId) -> dict:
        """
        Use Case: one order with its lines (Query).
        """
        order = await self.repo.get_order(order_id)

        if not order:
            raise OrderNotFoundError(order_id)

        if order.user_id != user_id:
            raise PermissionError("Access to this order is denied")

        rows = await self.repo.get_order_items(order_id)
        items = [
            {
                "product_id": detail.product_id,
                "product_name": name,
                "quantity": detail.quantity,
                "price": money(detail.price),
                "total": money(detail.total),
            }
            for detail, name in rows
        ]
        grand_total = money(sum((i["total"] for i in items), Decimal("0.00")))

        return {
            "id": order.id,
            "user_id": order.user_id,
            "total": money(order.total),
            "address": order.address,
            "created_at": order.created_at,
            "items": items,
            "grand_total": grand_total,
        }

# storefront/services/cart_service.py
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import ProductNotFoundError, OutOfStockError
from storefront.domain.types import money
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.session_store import SessionStore
from storefront.utils.settings import CART_MAX_QTY_PER_PRODUCT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases for one user.
    commands (add, decrease, remove, clear) write to cart_items and drop the session mirror
    query (get) reads through the session mirror
    """

    def __init__(self, db: AsyncSession, session_store: SessionStore):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.session_store = session_store

    #query
    async def get_cart(self, user_id: int) -> Dict[str, Any]:
        cached = await self.session_store.get_cart_snapshot(user_id)
        if cached is not None:
            return cached

        items = await self.repo.get_cart_items(user_id)
        total = sum((money(i.total) for i in items), Decimal("0.00"))

        snapshot = {
            "user_id": user_id,
            "items": [
                {
                    "product_id": i.product_id,
                    "quantity": i.quantity,
                    "price": str(money(i.price)),
                    "total": str(money(i.total)),
                }
                for i in items
            ],
            "total": str(money(total)),
            "item_count": len(items),
        }
        await self.session_store.set_cart_snapshot(user_id, snapshot)
        return snapshot

    #commands
    async def add_product(self, user_id: int, product_id: int, quantity: int = 1) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        product = await self.products.get_product(product_id)
        if not product:
            raise ProductNotFoundError(product_id)

        available = int(product.quantity or 0)
        if available <= 0:
            raise OutOfStockError(product_id, product.product_name)

        existing = await self.repo.get_cart_item(user_id, product_id)
        wanted = (existing.quantity if existing else 0) + quantity

        # cap per user per product, then live stock - checked here only, not by the db
        new_qty = min(wanted, CART_MAX_QTY_PER_PRODUCT, available)
        notice = None
        if new_qty < wanted:
            if new_qty == CART_MAX_QTY_PER_PRODUCT and CART_MAX_QTY_PER_PRODUCT <= available:
                notice = f"Maximum {CART_MAX_QTY_PER_PRODUCT} units per product allowed."
            else:
                notice = f"Only {available} left in stock."
            logger.info(f"Cart line {user_id}/{product_id} clamped from {wanted} to {new_qty}")

        # price snapshot refreshed from the live product
        await self.repo.upsert_item(user_id, product_id, new_qty, product.price)
        await self.session_store.invalidate_cart(user_id)

        logger.info(f"Product {product_id} in cart of user {user_id}, quantity {new_qty}")

        cart = dict(await self.get_cart(user_id))
        cart["notice"] = notice
        return cart

    async def decrease_by_one(self, user_id: int, product_id: int) -> Dict[str, Any]:
        await self.repo.decrement(user_id, product_id, 1)
        await self.session_store.invalidate_cart(user_id)
        return await self.get_cart(user_id)

    async def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        logger.info(f"Removing product {product_id} from cart of user {user_id}")
        await self.repo.remove(user_id, product_id)
        await self.session_store.invalidate_cart(user_id)
        return await self.get_cart(user_id)

    async def clear_cart(self, user_id: int) -> Dict[str, Any]:
        await self.repo.clear(user_id)
        await self.session_store.invalidate_cart(user_id)
        return await self.get_cart(user_id)

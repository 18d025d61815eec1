# storefront/repos/cart_repo.py
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.cart_item import CartItemModel
from storefront.domain.types import money


class CartRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_cart_items(self, user_id: int) -> Sequence[CartItemModel]:
        # insertion order of the cart rows
        result = await self.db.execute(
            select(CartItemModel)
            .where(CartItemModel.user_id == user_id)
            .order_by(CartItemModel.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def get_cart_item(self, user_id: int, product_id: int) -> CartItemModel | None:
        result = await self.db.execute(
            select(CartItemModel)
            .where(CartItemModel.user_id == user_id, CartItemModel.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_item(self, user_id: int, product_id: int, quantity: int, price: Decimal) -> CartItemModel:
        item = await self.get_cart_item(user_id, product_id)
        if item:
            item.quantity = quantity
            item.price = money(price)
            item.total = money(item.price * quantity)
        else:
            item = CartItemModel(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                price=money(price),
                total=money(money(price) * quantity),
            )
            self.db.add(item)
        await self.db.commit()
        await self.db.refresh(item)
        return item

    async def update_quantity(self, user_id: int, product_id: int, quantity: int, price: Decimal) -> int:
        item = await self.get_cart_item(user_id, product_id)
        if not item:
            return 0
        item.quantity = quantity
        item.price = money(price)
        item.total = money(item.price * quantity)
        await self.db.commit()
        return 1

    async def decrement(self, user_id: int, product_id: int, amount: int = 1) -> CartItemModel | None:
        """Lower the quantity by ``amount``, deleting the row once it reaches 0."""
        item = await self.get_cart_item(user_id, product_id)
        if not item:
            return None
        new_qty = max(item.quantity - amount, 0)
        if new_qty == 0:
            await self.db.delete(item)
            await self.db.commit()
            return None
        item.quantity = new_qty
        item.total = money(money(item.price) * new_qty)
        await self.db.commit()
        return item

    async def remove(self, user_id: int, product_id: int) -> int:
        result = await self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
            )
        )
        await self.db.commit()
        return result.rowcount

    async def remove_bulk(self, user_id: int, product_ids: Iterable[int]) -> int:
        ids = list(product_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id.in_(ids),
            )
        )
        await self.db.commit()
        return result.rowcount

    async def clear(self, user_id: int) -> int:
        result = await self.db.execute(delete(CartItemModel).where(CartItemModel.user_id == user_id))
        await self.db.commit()
        return result.rowcount

# storefront/repos/order_repo.py
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.order import OrderModel
from storefront.data.models.order_detail import OrderDetailModel
from storefront.data.models.product import ProductModel
from storefront.domain.types import CartLine


class OrderRepo:
    """Order headers and their lines. Append-only: there is no update path."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_order(self, user_id: int, total: Decimal, address: str | None) -> OrderModel:
        order = OrderModel(user_id=user_id, total=total, address=address)
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)
        return order

    async def add_order_items(self, order_id: int, lines: Iterable[CartLine], address: str | None) -> None:
        # one batch, one commit
        self.db.add_all(
            [
                OrderDetailModel(
                    order_id=order_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=line.price,
                    total=line.total,
                    address=address,
                )
                for line in lines
            ]
        )
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def get_order(self, order_id: int) -> OrderModel | None:
        return await self.db.get(OrderModel, order_id)

    async def get_orders_by_user(self, user_id: int) -> Sequence[OrderModel]:
        result = await self.db.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return result.scalars().all()

    async def get_order_items(self, order_id: int) -> list[tuple[OrderDetailModel, str | None]]:
        result = await self.db.execute(
            select(OrderDetailModel, ProductModel.product_name)
            .outerjoin(ProductModel, ProductModel.id == OrderDetailModel.product_id)
            .where(OrderDetailModel.order_id == order_id)
            .order_by(OrderDetailModel.id)
        )
        return [(detail, name) for detail, name in result.all()]

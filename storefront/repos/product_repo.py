# storefront/repos/product_repo.py
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.product import ProductModel


class ProductRepo:
    """Inventory store.

    Stock is only ever changed through ``decrement_stock`` and
    ``increment_stock``, each a single UPDATE statement.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: int) -> ProductModel | None:
        return await self.db.get(ProductModel, product_id, populate_existing=True)

    async def list_products(
        self,
        limit: int | None = None,
        offset: int | None = None,
        in_stock_only: bool = False,
    ) -> Sequence[ProductModel]:
        stmt = select(ProductModel).order_by(ProductModel.id)
        if in_stock_only:
            stmt = stmt.where(ProductModel.quantity > 0)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def create_product(
        self,
        product_name: str,
        quantity: int,
        price: Decimal,
        image: str | None = None,
    ) -> ProductModel:
        product = ProductModel(product_name=product_name, quantity=quantity, price=price, image=image)
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def decrement_stock(self, product_id: int, quantity: int) -> int:
        # UPDATE products SET quantity = quantity - n WHERE id = ? AND quantity >= n
        # 0 rows -> not enough stock (or product gone), never goes negative
        if quantity <= 0:
            return 0

        result = await self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.quantity >= quantity)
            .values(quantity=ProductModel.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def increment_stock(self, product_id: int, quantity: int) -> int:
        if quantity <= 0:
            return 0

        result = await self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(quantity=ProductModel.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

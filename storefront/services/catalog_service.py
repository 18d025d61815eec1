# storefront/services/catalog_service.py
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import ProductNotFoundError
from storefront.repos.product_repo import ProductRepo


class CatalogService:
    """Read side of the inventory store."""

    def __init__(self, db: AsyncSession):
        self.repo = ProductRepo(db)

    async def list_products(
        self,
        limit: int | None = None,
        offset: int | None = None,
        include_out_of_stock: bool = False,
    ):
        # shoppers never see sold out products, admins see everything
        return await self.repo.list_products(limit=limit, offset=offset, in_stock_only=not include_out_of_stock)

    async def get_product(self, product_id: int):
        product = await self.repo.get_product(product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

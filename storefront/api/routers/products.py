from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import ProductOut
from storefront.services.catalog_service import CatalogService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductOut])
async def list_products(
    limit: int | None = Query(None, gt=0, le=100),
    offset: int | None = Query(None, ge=0),
    include_out_of_stock: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    svc = CatalogService(db)
    return await svc.list_products(limit=limit, offset=offset, include_out_of_stock=include_out_of_stock)


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    svc = CatalogService(db)
    try:
        return await svc.get_product(product_id)
    except StorefrontError as e:
        raise http_error(e)

# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_session_store, http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import ItemIn, CartOut
from storefront.services.cart_service import CartService
from storefront.services.session_store import SessionStore

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
) -> CartService:
    return CartService(db=db, session_store=session_store)


@router.get("", response_model=CartOut)
async def get_cart(
    user_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    return await svc.get_cart(user_id)


@router.post("/items", response_model=CartOut)
async def add_item(
    payload: ItemIn,
    user_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    try:
        return await svc.add_product(
            user_id=user_id,
            product_id=payload.product_id,
            quantity=payload.quantity,
        )
    except StorefrontError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/items/{product_id}/decrease", response_model=CartOut)
async def decrease_item(
    product_id: int,
    user_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    return await svc.decrease_by_one(user_id, product_id)


@router.delete("/items/{product_id}", response_model=CartOut)
async def remove_item(
    product_id: int,
    user_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    return await svc.remove_product(user_id, product_id)


@router.delete("", response_model=CartOut)
async def clear_cart(
    user_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    return await svc.clear_cart(user_id)

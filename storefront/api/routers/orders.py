# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_lock_service, get_paypal_client, get_session_store, http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    CheckoutOut,
    OrderDetailOut,
    OrderSummaryOut,
    RefundIn,
    TransactionOut,
)
from storefront.services.checkout_service import CheckoutService
from storefront.services.lock_service import LockService
from storefront.services.order_service import OrderService
from storefront.services.paypal_client import PayPalClient
from storefront.services.refund_service import RefundService
from storefront.services.session_store import SessionStore
from storefront.services.user_service import UserService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=CheckoutOut, status_code=201)
async def create_order(
    user_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
    lock_service: LockService = Depends(get_lock_service),
):
    """
    Turns the user's cart into an order.
    Lines dropped or reduced for stock are reported back, the order is still placed.
    """
    svc = CheckoutService(db, session_store, lock_service)
    try:
        result = await svc.create_order(user_id)
    except StorefrontError as e:
        raise http_error(e)
    return result.to_dict()


@router.get("", response_model=List[OrderSummaryOut])
async def list_orders(
    user_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService(db).list_orders(user_id)


@router.get("/{order_id}", response_model=OrderDetailOut)
async def get_order(
    order_id: int,
    user_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    svc = OrderService(db)
    try:
        return await svc.get_order(order_id, user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_id}/refund", response_model=TransactionOut)
async def refund_order(
    order_id: int,
    payload: RefundIn,
    user_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    """
    Admin only. Refunds the card capture of the order and restocks its lines.
    """
    try:
        user = await UserService(db).get_user(user_id)
        if user.role != "admin":
            raise PermissionError("Only admins can refund orders")
        return await RefundService(db, paypal).refund_order(order_id, payload.reason, payload.amount)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorefrontError as e:
        raise http_error(e)

# storefront/api/routers/payments.py
import json

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import (
    get_lock_service,
    get_nets_client,
    get_nets_poller,
    get_paypal_client,
    get_session_store,
    http_error,
)
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    NetsQrIn,
    NetsQrOut,
    PaymentCheckoutOut,
    PayPalCaptureIn,
    PayPalOrderOut,
    TransactionOut,
)
from storefront.services.lock_service import LockService
from storefront.services.nets_client import NetsClient
from storefront.services.nets_service import NetsPaymentService, NetsStatusPoller
from storefront.services.payment_service import PaymentService
from storefront.services.paypal_client import PayPalClient
from storefront.services.session_store import SessionStore

router = APIRouter(prefix="/payments", tags=["payments"])


def get_paypal_service(
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
    lock_service: LockService = Depends(get_lock_service),
    paypal: PayPalClient = Depends(get_paypal_client),
) -> PaymentService:
    return PaymentService(db, session_store, paypal, lock_service)


def get_nets_service(
    db: AsyncSession = Depends(get_db),
    session_store: SessionStore = Depends(get_session_store),
    lock_service: LockService = Depends(get_lock_service),
    nets: NetsClient = Depends(get_nets_client),
) -> NetsPaymentService:
    return NetsPaymentService(db, session_store, nets, lock_service)


def _paid(result, txn, message: str) -> dict:
    return {**result.to_dict(), "transaction": TransactionOut.model_validate(txn), "message": message}


# -- PayPal ---------------------------------------------------------------------

@router.post("/paypal/orders", response_model=PayPalOrderOut)
async def create_paypal_order(
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_paypal_service),
):
    try:
        return {"order_id": await svc.create_payment_order(user_id)}
    except StorefrontError as e:
        raise http_error(e)


@router.post("/paypal/capture", response_model=PaymentCheckoutOut, status_code=201)
async def capture_paypal_order(
    payload: PayPalCaptureIn,
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_paypal_service),
):
    try:
        result, txn = await svc.complete_payment(user_id, payload.order_id, payload.address)
    except StorefrontError as e:
        raise http_error(e)
    return _paid(result, txn, "Payment successful and order created")


# -- NETS QR --------------------------------------------------------------------

@router.post("/nets/qr", response_model=NetsQrOut)
async def request_nets_qr(
    payload: NetsQrIn,
    user_id: int = Query(..., gt=0),
    svc: NetsPaymentService = Depends(get_nets_service),
):
    try:
        return await svc.request_qr(user_id, payload.address)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/nets/status/{txn_retrieval_ref}")
async def nets_payment_status(
    txn_retrieval_ref: str,
    request: Request,
    poller: NetsStatusPoller = Depends(get_nets_poller),
):
    """
    Server-sent events: one ``data:`` frame per provider answer, closed on a terminal state.
    """

    async def stream():
        async for event in poller.events(txn_retrieval_ref, request.is_disconnected):
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/nets/complete", response_model=PaymentCheckoutOut, status_code=201)
async def complete_nets_payment(
    user_id: int = Query(..., gt=0),
    svc: NetsPaymentService = Depends(get_nets_service),
):
    try:
        result, txn = await svc.complete_payment(user_id)
    except StorefrontError as e:
        raise http_error(e)
    return _paid(result, txn, "NETS payment successful and order created")

# storefront/repos/transaction_repo.py
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.data.models.transaction import TransactionModel
from storefront.domain.types import PaymentRecord, TransactionStatus


class TransactionRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, order_id: int, payment: PaymentRecord, status: TransactionStatus) -> TransactionModel:
        txn = TransactionModel(
            order_id=order_id,
            capture_id=payment.capture_id,
            payer_id=payment.payer_id,
            payer_email=payment.payer_email,
            amount=payment.amount,
            currency=payment.currency,
            status=status.value,
            time=payment.time,
        )
        self.db.add(txn)
        await self.db.commit()
        await self.db.refresh(txn)
        return txn

    async def get_latest_by_order_id(self, order_id: int) -> TransactionModel | None:
        result = await self.db.execute(
            select(TransactionModel)
            .where(TransactionModel.order_id == order_id)
            .order_by(TransactionModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_latest_by_order_ids(self, order_ids: Iterable[int]) -> dict[int, TransactionModel]:
        ids = list(order_ids)
        if not ids:
            return {}
        latest = (
            select(func.max(TransactionModel.id))
            .where(TransactionModel.order_id.in_(ids))
            .group_by(TransactionModel.order_id)
        )
        result = await self.db.execute(select(TransactionModel).where(TransactionModel.id.in_(latest)))
        return {txn.order_id: txn for txn in result.scalars().all()}

    async def update_status(
        self,
        order_id: int,
        status: TransactionStatus,
        refund_reason: str | None = None,
    ) -> TransactionModel | None:
        txn = await self.get_latest_by_order_id(order_id)
        if txn:
            txn.status = status.value
            txn.refund_reason = refund_reason
            await self.db.commit()
            await self.db.refresh(txn)
        return txn

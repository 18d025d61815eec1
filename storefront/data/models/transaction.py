from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text

from storefront.data.database import Base


class TransactionModel(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # schema allows many per order, reads take the latest by id
    order_id = Column("orderId", Integer, ForeignKey("orders.id"), nullable=False, index=True)

    capture_id = Column("captureId", String(100), nullable=True)
    payer_id = Column("payerId", String(100), nullable=True)
    payer_email = Column("payerEmail", String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(30), nullable=False)  # COMPLETED, COMPLETED_WITH_WARNINGS, REFUNDED
    time = Column(DateTime(timezone=True), nullable=False)
    refund_reason = Column("refundReason", Text, nullable=True)

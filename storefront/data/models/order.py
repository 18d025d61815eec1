from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from storefront.data.database import Base

class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column("userid", Integer, ForeignKey("users.id"), nullable=False, index=True)

    total = Column(Numeric(10, 2), nullable=False)
    address = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    # append-only, no update path
    items = relationship("OrderDetailModel", back_populates="order", lazy="raise")

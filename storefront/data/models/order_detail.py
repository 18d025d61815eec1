from sqlalchemy import Column, Integer, ForeignKey, String, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderDetailModel(Base):
    __tablename__ = "order_details"

    # auto increment, never MAX(id)+1
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column("orderid", Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column("productid", Integer, nullable=False)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    address = Column(String(255), nullable=True)

    order = relationship("OrderModel", back_populates="items")

from sqlalchemy import Column, Integer, String, Numeric, CheckConstraint

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    product_name = Column("productName", String(255), nullable=False)

    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity"),
        CheckConstraint("price >= 0", name="ck_products_price"),
    )

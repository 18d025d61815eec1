from sqlalchemy import Column, Integer, ForeignKey, Numeric, UniqueConstraint

from storefront.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column("userid", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column("productid", Integer, nullable=False)

    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    # per-product cap and live stock are checked in CartService, not here
    __table_args__ = (UniqueConstraint("userid", "productid", name="u_cart_user_product"),)

#import of every model so SQLAlchemy registers them in Base.metadata

from storefront.data.models.user import UserModel
from storefront.data.models.product import ProductModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_detail import OrderDetailModel
from storefront.data.models.transaction import TransactionModel

__all__ = [
    "UserModel",
    "ProductModel",
    "CartItemModel",
    "OrderModel",
    "OrderDetailModel",
    "TransactionModel",
]

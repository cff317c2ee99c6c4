#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from lanka_basket.data.models.user import UserModel
from lanka_basket.data.models.product import ProductModel
from lanka_basket.data.models.address import AddressModel
from lanka_basket.data.models.cart_item import CartItemModel
from lanka_basket.data.models.order import OrderModel, OrderItemModel

__all__ = [
    "UserModel",
    "ProductModel",
    "AddressModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
]

# import every model so SQLAlchemy registers it on Base.metadata

from storefront.data.models.product import ProductModel
from storefront.data.models.cart import CartBackupModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel

__all__ = ["ProductModel", "CartBackupModel", "OrderModel", "OrderItemModel"]

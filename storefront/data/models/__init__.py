#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.user import UserModel
from storefront.data.models.address import AddressModel
from storefront.data.models.product import CategoryModel, ProductModel, ProductVariantModel, SaleModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.inventory_transaction import InventoryTransactionModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.audit_log import AuditLogModel

__all__ = [
    "UserModel",
    "AddressModel",
    "CategoryModel",
    "ProductModel",
    "ProductVariantModel",
    "SaleModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "InventoryTransactionModel",
    "PaymentModel",
    "AuditLogModel",
]

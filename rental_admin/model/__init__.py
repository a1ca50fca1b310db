# ------ rental_admin/model/__init__.py ------

from .user import User
from .category import Category
from .product import Product
from .coupon import Coupon, CouponUsage
from .shipping import ShippingMethod
from .order import Order, OrderItem, OrderStatusChange, OrderDocument, ORDER_STATUSES

__all__ = [
    "User",
    "Category",
    "Product",
    "Coupon",
    "CouponUsage",
    "ShippingMethod",
    "Order",
    "OrderItem",
    "OrderStatusChange",
    "OrderDocument",
    "ORDER_STATUSES",
]

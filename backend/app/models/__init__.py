"""
Database models (SQLModel tables).

- user.py: buyers and admins
- product.py: catalog rows read by the cart and checkout
- cart.py: per-user cart with price-locked items
- discount.py: discount codes and their redemption trail
- order.py: immutable orders and item snapshots
- payment.py: one payment record per order, updated by webhooks
"""
from sqlmodel import SQLModel

from .base import as_utc, utc_now
from .cart import Cart, CartItem
from .discount import DiscountCode, DiscountUsage
from .order import Order, OrderItem
from .payment import Payment
from .product import Product
from .user import User

__all__ = [
    "SQLModel",
    "utc_now",
    "as_utc",
    "User",
    "Product",
    "Cart",
    "CartItem",
    "DiscountCode",
    "DiscountUsage",
    "Order",
    "OrderItem",
    "Payment",
]

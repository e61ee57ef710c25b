"""Data access helpers. Every function takes a keyword-only ``session``."""
from .cart import (
    add_cart_item,
    clear_cart_items,
    get_cart,
    get_cart_item,
    get_cart_items,
    get_or_create_cart,
    remove_cart_item,
)
from .discount import (
    activate_code as activate_discount_code,
)
from .discount import (
    count_user_usages,
)
from .discount import (
    create_code as create_discount_code,
)
from .discount import (
    deactivate_code as deactivate_discount_code,
)
from .discount import (
    delete_code as delete_discount_code,
)
from .discount import (
    get_by_code as get_discount_by_code,
)
from .discount import (
    get_code as get_discount_code,
)
from .discount import (
    increment_usage as increment_discount_usage,
)
from .discount import (
    list_codes as list_discount_codes,
)
from .discount import (
    list_usages as list_discount_usages,
)
from .discount import (
    normalize_code as normalize_discount_code,
)
from .discount import (
    update_code as update_discount_code,
)
from .order import (
    claim_payment_attempt,
    get_order_for_user,
    get_order_items,
    get_payment_for_order,
    list_orders_for_user,
)
from .product import get_products, get_published_product
from .user import get_user_contact

__all__ = [
    "add_cart_item",
    "clear_cart_items",
    "get_cart",
    "get_cart_item",
    "get_cart_items",
    "get_or_create_cart",
    "remove_cart_item",
    "activate_discount_code",
    "count_user_usages",
    "create_discount_code",
    "deactivate_discount_code",
    "delete_discount_code",
    "get_discount_by_code",
    "get_discount_code",
    "increment_discount_usage",
    "list_discount_codes",
    "list_discount_usages",
    "normalize_discount_code",
    "update_discount_code",
    "claim_payment_attempt",
    "get_order_for_user",
    "get_order_items",
    "get_payment_for_order",
    "list_orders_for_user",
    "get_products",
    "get_published_product",
    "get_user_contact",
]

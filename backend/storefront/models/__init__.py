"""ORM Models - SQLAlchemy declarative models for all storefront entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - UUID primary keys generated client-side (uuid4)

Design Decisions:
    - One file per aggregate (product + variants, cart + items, order + items)
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from storefront.models.user import User  # noqa: F401
from storefront.models.category import Category  # noqa: F401
from storefront.models.product import Product, ProductVariant  # noqa: F401
from storefront.models.stock_item import StockItem  # noqa: F401
from storefront.models.cart import Cart, CartItem  # noqa: F401
from storefront.models.coupon import Coupon  # noqa: F401
from storefront.models.order import Order, OrderItem  # noqa: F401
from storefront.models.setting import Setting  # noqa: F401

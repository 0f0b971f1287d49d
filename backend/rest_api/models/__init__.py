"""
SQLAlchemy ORM Models Package.

- base: Base class and AuditMixin
- store: Store, StoreConfig
- order: Order, OrderItem
- discount: DiscountEvent, DiscountRedemption
"""

from .base import Base, AuditMixin, BigIntId
from .store import Store, StoreConfig
from .order import Order, OrderItem
from .discount import DiscountEvent, DiscountRedemption, parse_product_ids

__all__ = [
    "Base",
    "AuditMixin",
    "BigIntId",
    "Store",
    "StoreConfig",
    "Order",
    "OrderItem",
    "DiscountEvent",
    "DiscountRedemption",
    "parse_product_ids",
]

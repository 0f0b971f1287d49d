"""
Repository layer: data access with eager loading and store isolation.
"""

from .base import BaseRepository, RepositoryFilters
from .order import OrderRepository, OrderFilters
from .discount import DiscountRepository, DiscountEventFilters

__all__ = [
    "BaseRepository",
    "RepositoryFilters",
    "OrderRepository",
    "OrderFilters",
    "DiscountRepository",
    "DiscountEventFilters",
]

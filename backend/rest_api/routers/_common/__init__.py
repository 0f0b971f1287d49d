"""
Common utilities shared across routers.
"""

from .dependencies import (
    get_configuration_service,
    get_order_service,
    get_redemption_engine,
)
from .errors import discount_code_error
from .pagination import Pagination, get_pagination

__all__ = [
    "get_configuration_service",
    "get_order_service",
    "get_redemption_engine",
    "discount_code_error",
    "Pagination",
    "get_pagination",
]

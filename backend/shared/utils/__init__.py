"""
Utilities module: HTTP exceptions.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ValidationError,
    InvalidTransitionError,
    DiscountCodeError,
    InternalError,
    DatabaseError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "InvalidTransitionError",
    "DiscountCodeError",
    "InternalError",
    "DatabaseError",
]

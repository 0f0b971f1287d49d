"""
Services module for business logic.

- domain/: Application services (orders, configuration, discount redemption)
- events/: Real-time notification publishing

Usage:
    from rest_api.services.domain import OrderService
    service = OrderService(db, engine, gateway)
"""

from .domain import (
    ConfigurationService,
    OrderService,
    RedemptionEngine,
)
from .events import (
    Audience,
    publish_notification,
)

__all__ = [
    "ConfigurationService",
    "OrderService",
    "RedemptionEngine",
    "Audience",
    "publish_notification",
]

"""
Domain Services - Application Layer.

Services contain business logic and orchestrate operations.
They use Repositories for data access and publish notifications
after their writes are committed.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import OrderService

    # In router
    service = OrderService(db, engine, gateway)
    order, redemption = service.create_order(body, background_tasks)
"""

from .redemption_service import (
    RedemptionEngine,
    RedemptionRecord,
    RedemptionResult,
    RedemptionStatus,
    RedemptionError,
    PersistenceFailure,
)
from .order_service import OrderService
from .configuration_service import ConfigurationService

__all__ = [
    "RedemptionEngine",
    "RedemptionRecord",
    "RedemptionResult",
    "RedemptionStatus",
    "RedemptionError",
    "PersistenceFailure",
    "OrderService",
    "ConfigurationService",
]

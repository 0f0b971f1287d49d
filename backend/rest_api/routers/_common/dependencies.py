"""
FastAPI dependencies wiring services to the request.

The RedemptionEngine and NotificationGateway are created once in the
application lifespan and live on app.state.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from rest_api.services.domain import (
    ConfigurationService,
    OrderService,
    RedemptionEngine,
)
from ws_gateway.gateway import NotificationGateway
from ws_gateway.routes import get_gateway


def get_redemption_engine(request: Request) -> RedemptionEngine:
    """The application's RedemptionEngine (one per process, holds the per-code locks)."""
    return request.app.state.redemption_engine


def get_order_service(
    db: Session = Depends(get_db),
    engine: RedemptionEngine = Depends(get_redemption_engine),
    gateway: NotificationGateway = Depends(get_gateway),
) -> OrderService:
    return OrderService(db, engine, gateway)


def get_configuration_service(
    db: Session = Depends(get_db),
    engine: RedemptionEngine = Depends(get_redemption_engine),
    gateway: NotificationGateway = Depends(get_gateway),
) -> ConfigurationService:
    return ConfigurationService(db, engine, gateway)

"""
Health check endpoints.
Provides basic and detailed health status of the service and its dependencies.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.config.logging import rest_api_logger as logger
from shared.infrastructure.db import get_db
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.routes import get_manager


router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": "storefront-api",
        "environment": settings.environment,
    }


@router.get("/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager),
):
    """
    Detailed health check: database connectivity and WebSocket gateway stats.

    Returns 503 Service Unavailable if the database is down.
    """
    checks = {
        "service": "storefront-api",
        "environment": settings.environment,
        "dependencies": {},
        "websocket": manager.get_stats(),
    }

    try:
        db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        checks["status"] = "degraded"
        return JSONResponse(content=checks, status_code=503)

    checks["status"] = "healthy"
    return checks

"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.infrastructure.db import engine, SessionLocal
from shared.config.settings import settings
from shared.config.logging import setup_logging, rest_api_logger as logger
from rest_api.models import Base
from rest_api.services.domain import RedemptionEngine
from ws_gateway.lifecycle import start_gateway, stop_gateway


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate production settings before startup
    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with insecure configuration."
            )

    # Startup
    logger.info("Starting storefront API", port=settings.rest_api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    # One engine per process: it owns the per-code redemption locks
    if getattr(app.state, "redemption_engine", None) is None:
        app.state.redemption_engine = RedemptionEngine(SessionLocal)

    cleanup_task = await start_gateway(app)

    yield

    # Shutdown
    logger.info("Shutting down storefront API")
    await stop_gateway(app, cleanup_task)

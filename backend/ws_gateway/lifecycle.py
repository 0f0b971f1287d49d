"""
Gateway startup and shutdown.

Creates the ConnectionManager and NotificationGateway on app.state and
runs the periodic stale-connection cleanup.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI

from shared.config.logging import ws_gateway_logger as logger
from shared.config.settings import settings
from ws_gateway.components.core.constants import WSConstants
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.gateway import NotificationGateway


async def start_heartbeat_cleanup(
    manager: ConnectionManager,
    interval: float = settings.ws_heartbeat_cleanup_interval,
) -> None:
    """
    Periodically clean up stale connections and unused room locks.
    """
    cleanup_cycle = 0
    while True:
        try:
            await asyncio.sleep(interval)
            cleanup_cycle += 1

            stale_cleaned = await manager.cleanup_stale_connections()
            if stale_cleaned > 0:
                logger.info("Cleaned up stale connections", count=stale_cleaned)

            if cleanup_cycle % WSConstants.LOCK_CLEANUP_CYCLE == 0:
                locks_cleaned = await manager.cleanup_locks()
                if locks_cleaned > 0:
                    logger.info("Cleaned up room locks", count=locks_cleaned)

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


def init_gateway(app: FastAPI) -> NotificationGateway:
    """Create the manager and gateway and store them on app.state."""
    manager = ConnectionManager()
    gateway = NotificationGateway(manager.rooms)
    app.state.ws_manager = manager
    app.state.gateway = gateway
    return gateway


async def start_gateway(app: FastAPI) -> asyncio.Task:
    """Initialize the gateway and start the cleanup task."""
    manager = getattr(app.state, "ws_manager", None)
    if manager is None:
        init_gateway(app)
        manager = app.state.ws_manager
    logger.info("WebSocket gateway started", max_connections=manager.get_stats()["max_total_connections"])
    return asyncio.create_task(start_heartbeat_cleanup(manager), name="heartbeat_cleanup")


async def stop_gateway(app: FastAPI, cleanup_task: asyncio.Task) -> None:
    """Stop the cleanup task and close remaining connections."""
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await app.state.ws_manager.shutdown()
    logger.info("WebSocket gateway stopped")

"""
Gateway routes and dependencies.

    GET /ws                 storefront WebSocket
    GET /api/socket/stats   connected stores

The ConnectionManager and NotificationGateway live on app.state; handlers
get them through get_manager / get_gateway.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, WebSocket

from ws_gateway.components.endpoints.store import StoreEndpoint
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.gateway import NotificationGateway

router = APIRouter(tags=["realtime"])


def get_manager(request: Request) -> ConnectionManager:
    """FastAPI dependency: the application's ConnectionManager."""
    return request.app.state.ws_manager


def get_gateway(request: Request) -> NotificationGateway:
    """FastAPI dependency: the application's NotificationGateway."""
    return request.app.state.gateway


@router.websocket("/ws")
async def store_websocket(websocket: WebSocket):
    """Storefront real-time connection."""
    manager: ConnectionManager = websocket.app.state.ws_manager
    endpoint = StoreEndpoint(websocket, manager)
    await endpoint.run()


@router.get("/api/socket/stats")
def socket_stats(request: Request) -> dict:
    """Connected clients per store."""
    return get_manager(request).get_socket_stats()

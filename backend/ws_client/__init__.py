"""
Storefront WebSocket client.

Keeps one logical connection to the /ws endpoint across transport
reconnects, replays the store join after every reconnect and dispatches
received events to registered callbacks.

Usage:
    from ws_client import SocketManager

    manager = SocketManager("ws://localhost:3000/ws")
    manager.on("nueva-orden", lambda data: print(data["orden"]["numero_orden"]))
    await manager.join_store(7, admin=True)
    await manager.connect()
"""

from .manager import SocketManager
from .state import ConnectionState
from .transport import Transport, TransportFactory, WebSocketTransport, websocket_transport

__all__ = [
    "SocketManager",
    "ConnectionState",
    "Transport",
    "TransportFactory",
    "WebSocketTransport",
    "websocket_transport",
]

"""
Connection components: room registry, heartbeat tracking and room locks.
"""

from ws_gateway.components.connection.registry import ConnectionRegistry
from ws_gateway.components.connection.heartbeat import HeartbeatTracker, handle_heartbeat
from ws_gateway.components.connection.locks import RoomLockManager

__all__ = [
    "ConnectionRegistry",
    "HeartbeatTracker",
    "handle_heartbeat",
    "RoomLockManager",
]

"""
WebSocket Connection Manager.

Thin orchestrator composing the connection components:
- ConnectionRegistry: room membership
- RoomProtocol: sockets, join/leave and emission
- HeartbeatTracker: activity tracking for stale-connection cleanup

One instance is created per application (see rest_api.main lifespan) and
stored on app.state; nothing here is a module-level singleton.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, TYPE_CHECKING

from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import settings
from ws_gateway.components.connection.heartbeat import HeartbeatTracker
from ws_gateway.components.connection.registry import ConnectionRegistry
from ws_gateway.components.core.constants import WSCloseCode, WSConstants
from ws_gateway.components.rooms.keys import store_id_of, STORE_PREFIX
from ws_gateway.components.rooms.protocol import RoomProtocol
from ws_gateway.core.connection.broadcaster import is_ws_connected

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections for real-time storefront notifications.

    Configuration from settings:
    - ws_max_total_connections: Global connection limit
    - ws_broadcast_batch_size: Parallel broadcast batch size
    - ws_heartbeat_timeout: Seconds before a connection is stale
    """

    def __init__(
        self,
        max_total_connections: int = settings.ws_max_total_connections,
        heartbeat_timeout: float = settings.ws_heartbeat_timeout,
        batch_size: int = settings.ws_broadcast_batch_size,
    ) -> None:
        self._max_total_connections = max_total_connections
        self.registry = ConnectionRegistry()
        self.rooms = RoomProtocol(
            self.registry,
            batch_size=batch_size,
            on_dead_connection=self._on_dead_connection,
        )
        self._heartbeat_tracker = HeartbeatTracker(timeout_seconds=heartbeat_timeout)
        self._connection_counter_lock = asyncio.Lock()
        self._total_connections = 0
        self._shutdown = False

    @property
    def total_connections(self) -> int:
        """Current number of accepted connections."""
        return self._total_connections

    @property
    def heartbeat_tracker(self) -> HeartbeatTracker:
        return self._heartbeat_tracker

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(
        self,
        websocket: "WebSocket",
        timeout: float = WSConstants.WS_ACCEPT_TIMEOUT,
    ) -> str:
        """
        Accept a WebSocket connection and attach it.

        Args:
            websocket: The WebSocket to accept.
            timeout: Seconds allowed for the handshake.

        Returns:
            The new connection id.

        Raises:
            ConnectionError: If the server is at capacity, shutting down,
                or the handshake failed.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        # Atomic check-and-increment for connection limit
        async with self._connection_counter_lock:
            if self._total_connections >= self._max_total_connections:
                raise ConnectionError(
                    f"Server at capacity ({self._max_total_connections} connections)"
                )
            self._total_connections += 1

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._decrement_connection_count()
            raise ConnectionError("WebSocket accept timed out")
        except Exception as e:
            await self._decrement_connection_count()
            raise ConnectionError(f"WebSocket accept failed: {e}")

        connection_id = uuid.uuid4().hex
        self.rooms.attach(connection_id, websocket)
        self._heartbeat_tracker.record(connection_id)
        return connection_id

    async def disconnect(self, connection_id: str) -> set[str]:
        """
        Remove a connection from every room and stop tracking it.

        Safe to call more than once for the same connection.

        Returns:
            The room keys the connection left.
        """
        was_attached = self.rooms.is_attached(connection_id)
        left = self.rooms.detach(connection_id)
        self._heartbeat_tracker.remove(connection_id)
        if was_attached:
            await self._decrement_connection_count()
        return left

    def record_heartbeat(self, connection_id: str) -> None:
        """Record activity from a connection."""
        self._heartbeat_tracker.record(connection_id)

    async def _decrement_connection_count(self) -> None:
        async with self._connection_counter_lock:
            self._total_connections = max(0, self._total_connections - 1)

    async def _on_dead_connection(self, connection_id: str) -> None:
        # The socket is already detached; release its slot and heartbeat entry.
        self._heartbeat_tracker.remove(connection_id)
        await self._decrement_connection_count()

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def cleanup_stale_connections(self) -> int:
        """
        Close and detach connections without recent activity.

        Returns:
            Number of connections cleaned up.
        """
        stale = self._heartbeat_tracker.cleanup_stale()
        cleaned = 0
        for connection_id in stale:
            ws = self.rooms.socket_of(connection_id)
            await self.disconnect(connection_id)
            cleaned += 1
            audit_ws_connection("STALE", connection_id, reason="heartbeat_timeout")
            if ws is not None and is_ws_connected(ws):
                try:
                    await ws.close(code=WSCloseCode.GOING_AWAY, reason="Heartbeat timeout")
                except Exception as e:
                    logger.debug("Error closing stale connection", connection_id=connection_id, error=str(e))
        return cleaned

    async def cleanup_locks(self) -> int:
        """Drop send locks of rooms without members."""
        return await self.rooms.cleanup_locks()

    async def shutdown(self) -> None:
        """Close every attached connection. New connections are rejected afterwards."""
        self._shutdown = True
        for connection_id in self.rooms.attached_ids():
            ws = self.rooms.socket_of(connection_id)
            await self.disconnect(connection_id)
            if ws is not None and is_ws_connected(ws):
                try:
                    await ws.close(code=WSCloseCode.GOING_AWAY, reason="Server shutdown")
                except Exception as e:
                    logger.debug("Error closing connection on shutdown", connection_id=connection_id, error=str(e))

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_socket_stats(self) -> dict[str, Any]:
        """
        Public statistics of connected stores.

        Returns:
            {"total_connections": int,
             "tiendas_activas": int,
             "connections_por_tienda": {store_id: member count}}
        """
        per_store: dict[str, int] = {}
        for key, size in self.registry.room_sizes(STORE_PREFIX).items():
            store_id = store_id_of(key)
            if store_id is not None:
                per_store[store_id] = size

        return {
            "total_connections": self.rooms.attached_count,
            "tiendas_activas": len(per_store),
            "connections_por_tienda": per_store,
        }

    def get_stats(self) -> dict[str, Any]:
        """Internal statistics for health checks."""
        return {
            "total_connections": self._total_connections,
            "max_total_connections": self._max_total_connections,
            "heartbeat": self._heartbeat_tracker.get_stats(),
            **self.rooms.get_stats(),
        }

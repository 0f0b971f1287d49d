"""
Room Protocol.

Join/leave operations on top of the ConnectionRegistry plus emission of
events to every member of a room.

Usage:
    rooms = RoomProtocol(ConnectionRegistry())
    rooms.attach(connection_id, websocket)
    rooms.join_store(7, connection_id)
    delivered = await rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {"config": {...}})
"""

from __future__ import annotations

import threading
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.connection.locks import RoomLockManager
from ws_gateway.components.connection.registry import ConnectionRegistry
from ws_gateway.components.core.constants import WSConstants
from ws_gateway.components.events.types import NotificationEvent, StoreEvent
from ws_gateway.components.rooms.keys import (
    admin_room,
    customer_room,
    order_room,
    store_room,
)
from ws_gateway.core.connection.broadcaster import ConnectionBroadcaster

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class RoomProtocol:
    """
    Room membership and emission for attached connections.

    Membership lives in the registry; this class keeps the socket of each
    attached connection. Emission snapshots membership when it starts, so
    a connection joining mid-emission receives the next event, not the
    current one. Nothing is buffered for connections that join later.

    Emission to one room is serialized by a per-room asyncio.Lock, so
    events emitted to the same room arrive in emission order.
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        batch_size: int = 50,
        send_timeout: float = WSConstants.SEND_TIMEOUT,
        on_dead_connection: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        """
        Args:
            registry: Membership registry (a new one is created if omitted).
            batch_size: Sockets sent to in parallel per batch.
            send_timeout: Seconds allowed for one send.
            on_dead_connection: Called after a failed socket was detached.
        """
        self.registry = registry if registry is not None else ConnectionRegistry()
        self._sockets: dict[str, WebSocket] = {}
        self._sockets_lock = threading.Lock()
        self._locks = RoomLockManager()
        self._on_dead_connection = on_dead_connection
        self._broadcaster = ConnectionBroadcaster(
            mark_dead_callback=self._mark_dead,
            batch_size=batch_size,
            send_timeout=send_timeout,
        )

    # =========================================================================
    # Connection attachment
    # =========================================================================

    def attach(self, connection_id: str, websocket: "WebSocket") -> None:
        """Make a connection reachable for emission."""
        with self._sockets_lock:
            self._sockets[connection_id] = websocket

    def detach(self, connection_id: str) -> set[str]:
        """
        Forget a connection and remove it from every room.

        Returns:
            The room keys the connection left.
        """
        with self._sockets_lock:
            self._sockets.pop(connection_id, None)
        return self.registry.on_disconnect(connection_id)

    def is_attached(self, connection_id: str) -> bool:
        with self._sockets_lock:
            return connection_id in self._sockets

    @property
    def attached_count(self) -> int:
        with self._sockets_lock:
            return len(self._sockets)

    def attached_ids(self) -> list[str]:
        with self._sockets_lock:
            return list(self._sockets)

    def socket_of(self, connection_id: str) -> "WebSocket | None":
        with self._sockets_lock:
            return self._sockets.get(connection_id)

    # =========================================================================
    # Membership
    # =========================================================================

    def join(self, room: str, connection_id: str) -> bool:
        """Join a room. Joining twice has no further effect."""
        return self.registry.join(room, connection_id)

    def leave(self, room: str, connection_id: str) -> bool:
        """Leave a room. Leaving a room never joined is a no-op."""
        return self.registry.leave(room, connection_id)

    def join_store(self, store_id: int | str, connection_id: str) -> str:
        room = store_room(store_id)
        self.join(room, connection_id)
        return room

    def leave_store(self, store_id: int | str, connection_id: str) -> str:
        room = store_room(store_id)
        self.leave(room, connection_id)
        return room

    def join_store_admin(self, store_id: int | str, connection_id: str) -> str:
        room = admin_room(store_id)
        self.join(room, connection_id)
        return room

    def leave_store_admin(self, store_id: int | str, connection_id: str) -> str:
        room = admin_room(store_id)
        self.leave(room, connection_id)
        return room

    def join_store_customers(self, store_id: int | str, connection_id: str) -> str:
        room = customer_room(store_id)
        self.join(room, connection_id)
        return room

    def leave_store_customers(self, store_id: int | str, connection_id: str) -> str:
        room = customer_room(store_id)
        self.leave(room, connection_id)
        return room

    def follow_order(self, order_number: str, connection_id: str) -> str:
        room = order_room(order_number)
        self.join(room, connection_id)
        return room

    def unfollow_order(self, order_number: str, connection_id: str) -> str:
        room = order_room(order_number)
        self.leave(room, connection_id)
        return room

    # =========================================================================
    # Emission
    # =========================================================================

    async def emit(
        self,
        room: str,
        event: StoreEvent | str,
        payload: dict[str, Any] | None = None,
        exclude: str | None = None,
    ) -> int:
        """
        Emit an event to every current member of a room.

        Args:
            room: Room key.
            event: Event name, forwarded verbatim.
            payload: Event fields; a timestamp is added.
            exclude: Connection id that must not receive the event (the sender).

        Returns:
            Number of members the event was delivered to.
        """
        return await self.emit_event(room, NotificationEvent.create(event, payload), exclude=exclude)

    async def emit_event(
        self,
        room: str,
        notification: NotificationEvent,
        exclude: str | None = None,
    ) -> int:
        """Emit a prepared NotificationEvent to a room."""
        if self.registry.size_of(room) == 0:
            return 0

        lock = await self._locks.get_room_lock(room)
        async with lock:
            targets = self._targets(room, exclude)
            if not targets:
                return 0
            sent = await self._broadcaster.broadcast(
                targets,
                notification.to_message(),
                context=room,
            )

        logger.debug(
            "Event emitted",
            room=room,
            event=notification.event_name,
            delivered=sent,
            members=len(targets),
        )
        return sent

    async def send_to(
        self,
        connection_id: str,
        event: StoreEvent | str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Send an event to a single attached connection."""
        ws = self.socket_of(connection_id)
        if ws is None:
            return False
        frame = NotificationEvent.create(event, payload).to_message()
        return await self._broadcaster.send(connection_id, ws, frame)

    async def cleanup_locks(self) -> int:
        """Drop send locks of rooms that no longer have members."""
        active = frozenset(self.registry.room_sizes())
        return await self._locks.cleanup_locks(active)

    def get_stats(self) -> dict[str, Any]:
        return {
            "attached_connections": self.attached_count,
            **self.registry.get_stats(),
            **self._broadcaster.get_stats(),
            **self._locks.get_stats(),
        }

    def _targets(self, room: str, exclude: str | None) -> list[tuple[str, "WebSocket"]]:
        members = self.registry.members(room)
        with self._sockets_lock:
            return [
                (cid, self._sockets[cid])
                for cid in members
                if cid != exclude and cid in self._sockets
            ]

    async def _mark_dead(self, connection_id: str) -> None:
        left = self.detach(connection_id)
        logger.info("Dead connection detached", connection_id=connection_id, rooms=len(left))
        if self._on_dead_connection is not None:
            await self._on_dead_connection(connection_id)

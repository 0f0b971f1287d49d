"""
Event Fan-Out Gateway.

The only entry point HTTP handlers and services use to push events to
connected clients. Resolves the room for a store (or order) and emits
through the RoomProtocol.

Fire-and-forget: every method returns the number of deliveries and never
raises. A failure is logged and reported as 0 deliveries so the write
that triggered the notification is never undone by it.
"""

from __future__ import annotations

from typing import Any

from shared.config.logging import get_logger
from ws_gateway.components.events.types import StoreEvent, event_name
from ws_gateway.components.rooms.keys import (
    admin_room,
    customer_room,
    order_room,
    store_room,
)
from ws_gateway.components.rooms.protocol import RoomProtocol

logger = get_logger(__name__)


class NotificationGateway:
    """
    Publishes store events to rooms.

    Usage:
        gateway = NotificationGateway(rooms)
        await gateway.notify_store_admins(7, StoreEvent.NEW_ORDER, {"orden": {...}})
    """

    def __init__(self, rooms: RoomProtocol) -> None:
        self._rooms = rooms

    @property
    def rooms(self) -> RoomProtocol:
        return self._rooms

    async def notify_store(
        self,
        store_id: int,
        event: StoreEvent | str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Emit to everyone in the store's general room."""
        return await self._emit(store_room(store_id), event, data, store_id=store_id)

    async def notify_store_admins(
        self,
        store_id: int,
        event: StoreEvent | str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Emit to the store's admin room."""
        return await self._emit(admin_room(store_id), event, data, store_id=store_id)

    async def notify_store_customers(
        self,
        store_id: int,
        event: StoreEvent | str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Emit to customers subscribed to the store."""
        return await self._emit(customer_room(store_id), event, data, store_id=store_id)

    async def notify_order(
        self,
        order_number: str,
        event: StoreEvent | str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Emit to clients tracking one order."""
        return await self._emit(order_room(order_number), event, data, order_number=order_number)

    async def _emit(
        self,
        room: str,
        event: StoreEvent | str,
        data: dict[str, Any] | None,
        **log_context: Any,
    ) -> int:
        name = event_name(event)
        try:
            delivered = await self._rooms.emit(room, name, data)
        except Exception as e:
            logger.error(
                "Failed to emit notification",
                room=room,
                event=name,
                error=str(e),
                exc_info=True,
                **log_context,
            )
            return 0

        if delivered == 0:
            logger.debug("Notification had no recipients", room=room, event=name, **log_context)
        else:
            logger.info("Notification emitted", room=room, event=name, delivered=delivered, **log_context)
        return delivered

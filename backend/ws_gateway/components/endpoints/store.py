"""
Storefront WebSocket endpoint.

Handles the connection lifecycle (origin check, accept, message loop,
disconnect) and the client messages of the storefront protocol:

    join-tienda / leave-tienda              general store room
    join-tienda-admin / leave-tienda-admin  admin room
    join-tienda-cliente                     customer subscription room
    follow-order / unfollow-order           order tracking room
    ping                                    heartbeat

plus the relay messages, re-emitted to the store's rooms.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.constants import Limits
from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import settings
from shared.infrastructure.correlation import bind_connection
from ws_gateway.components.connection.heartbeat import handle_heartbeat, pong_frame
from ws_gateway.components.core.constants import (
    ClientMessage,
    WSCloseCode,
)
from ws_gateway.components.events.types import ClientFrame, StoreEvent
from ws_gateway.components.rooms.keys import admin_room, store_room

if TYPE_CHECKING:
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


def parse_store_id(value: Any) -> int | None:
    """
    Store id from a client payload: a positive int or a string of digits.

    Booleans and everything else are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def parse_order_number(value: Any) -> str | None:
    """Order number from a client payload: a non-empty bounded string."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or len(value) > Limits.MAX_CODE_LENGTH:
        return None
    return value


def validate_origin(origin: str | None) -> bool:
    """
    Check the Origin header against ALLOWED_ORIGINS (or the development defaults).

    A missing Origin header is accepted only in development.
    """
    if not origin:
        return settings.environment == "development"
    return origin in settings.origins


class StoreEndpoint:
    """
    One storefront WebSocket connection.

    Usage:
        endpoint = StoreEndpoint(websocket, manager)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        receive_timeout: float = settings.ws_receive_timeout,
        max_message_size: int = settings.ws_max_message_size,
    ):
        self.websocket = websocket
        self.manager = manager
        self.rooms = manager.rooms
        self.receive_timeout = receive_timeout
        self.max_message_size = max_message_size
        self.connection_id: str | None = None
        self._is_running = False

        self._handlers: dict[str, Callable[[ClientFrame], Awaitable[None]]] = {
            ClientMessage.JOIN_STORE: self._on_join_store,
            ClientMessage.LEAVE_STORE: self._on_leave_store,
            ClientMessage.JOIN_STORE_ADMIN: self._on_join_store_admin,
            ClientMessage.LEAVE_STORE_ADMIN: self._on_leave_store_admin,
            ClientMessage.JOIN_STORE_CUSTOMERS: self._on_join_store_customers,
            ClientMessage.FOLLOW_ORDER: self._on_follow_order,
            ClientMessage.UNFOLLOW_ORDER: self._on_unfollow_order,
            ClientMessage.PING: self._on_ping,
            ClientMessage.UPDATE_CONFIG: self._on_update_config,
            ClientMessage.NEW_DISCOUNT_EVENT: self._on_new_discount_event,
            ClientMessage.UPDATE_DISCOUNT_EVENT: self._on_update_discount_event,
            ClientMessage.CODE_USED: self._on_code_used,
            ClientMessage.UPDATE_ORDER_STATUS: self._on_update_order_status,
            ClientMessage.NEW_ORDER: self._on_new_order,
        }

    async def run(self) -> None:
        """
        Main entry point.

        1. Validate origin
        2. Accept and attach
        3. Message loop
        4. Detach from every room on disconnect
        """
        origin = self.websocket.headers.get("origin")
        if not validate_origin(origin):
            logger.warning("WebSocket connection rejected - invalid origin", origin=origin)
            audit_ws_connection("REJECTED", "-", origin=origin, reason="invalid_origin")
            await self.websocket.close(code=WSCloseCode.FORBIDDEN, reason="Origin not allowed")
            return

        try:
            self.connection_id = await self.manager.connect(self.websocket)
        except ConnectionError as e:
            audit_ws_connection("REJECTED", "-", origin=origin, reason=str(e))
            try:
                await self.websocket.close(code=WSCloseCode.SERVER_OVERLOADED, reason="Server unavailable")
            except RuntimeError:
                # Accept never completed; nothing to close
                pass
            return

        audit_ws_connection("CONNECT", self.connection_id, origin=origin)

        self._is_running = True
        try:
            with bind_connection(self.connection_id):
                await self._message_loop()
        except WebSocketDisconnect:
            audit_ws_connection("DISCONNECT", self.connection_id, reason="client_disconnect")
        finally:
            self._is_running = False
            left = await self.manager.disconnect(self.connection_id)
            logger.debug("Connection closed", connection_id=self.connection_id, rooms_left=len(left))

    async def _message_loop(self) -> None:
        while self._is_running:
            data = await self._receive_with_timeout()
            if data is None:
                logger.info(
                    "Connection timed out (no messages)",
                    connection_id=self.connection_id,
                    timeout=self.receive_timeout,
                )
                await self.websocket.close(code=WSCloseCode.NORMAL, reason="Connection timeout")
                break

            if len(data) > self.max_message_size:
                logger.warning(
                    "Message too large",
                    connection_id=self.connection_id,
                    size=len(data),
                    max_size=self.max_message_size,
                )
                await self.websocket.close(code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large")
                break

            self.manager.record_heartbeat(self.connection_id)

            if await handle_heartbeat(self.websocket, data):
                continue

            await self.handle_message(data)

    async def _receive_with_timeout(self) -> str | None:
        try:
            return await asyncio.wait_for(
                self.websocket.receive_text(),
                timeout=self.receive_timeout,
            )
        except asyncio.TimeoutError:
            return None

    async def handle_message(self, data: str) -> None:
        """Parse a JSON frame and dispatch it to its handler."""
        try:
            frame = ClientFrame.from_text(data)
        except ValueError as e:
            logger.debug("Malformed frame ignored", connection_id=self.connection_id, error=str(e))
            return

        handler = self._handlers.get(frame.event)
        if handler is None:
            logger.debug("Unknown message received", connection_id=self.connection_id, event=frame.event)
            return

        await handler(frame)

    # =========================================================================
    # Membership
    # =========================================================================

    def _store_id(self, frame: ClientFrame) -> int | None:
        raw = frame.data if not isinstance(frame.data, dict) else frame.get("tiendaId", "tienda_id", "storeId")
        store_id = parse_store_id(raw)
        if store_id is None:
            logger.debug("Message without a valid store id", connection_id=self.connection_id, event=frame.event)
        return store_id

    def _order_number(self, frame: ClientFrame) -> str | None:
        raw = frame.data if not isinstance(frame.data, dict) else frame.get("numeroOrden", "numero_orden", "orderNumber")
        return parse_order_number(raw)

    async def _on_join_store(self, frame: ClientFrame) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        self.rooms.join_store(store_id, self.connection_id)
        logger.info("Socket joined store room", connection_id=self.connection_id, store_id=store_id)
        await self.rooms.send_to(
            self.connection_id,
            StoreEvent.CONNECTION_STATUS,
            {"status": "connected", "tiendaId": store_id},
        )

    async def _on_leave_store(self, frame: ClientFrame) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        self.rooms.leave_store(store_id, self.connection_id)
        logger.info("Socket left store room", connection_id=self.connection_id, store_id=store_id)

    async def _on_join_store_admin(self, frame: ClientFrame) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        self.rooms.join_store_admin(store_id, self.connection_id)
        logger.info("Socket joined store admin room", connection_id=self.connection_id, store_id=store_id)

    async def _on_leave_store_admin(self, frame: ClientFrame) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        self.rooms.leave_store_admin(store_id, self.connection_id)

    async def _on_join_store_customers(self, frame: ClientFrame) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        self.rooms.join_store_customers(store_id, self.connection_id)
        await self.rooms.send_to(
            self.connection_id,
            StoreEvent.SUBSCRIPTION_CONFIRMED,
            {"tiendaId": store_id, "message": "Suscrito a actualizaciones"},
        )

    async def _on_follow_order(self, frame: ClientFrame) -> None:
        order_number = self._order_number(frame)
        if order_number is None:
            return
        self.rooms.follow_order(order_number, self.connection_id)

    async def _on_unfollow_order(self, frame: ClientFrame) -> None:
        order_number = self._order_number(frame)
        if order_number is None:
            return
        self.rooms.unfollow_order(order_number, self.connection_id)

    async def _on_ping(self, frame: ClientFrame) -> None:
        try:
            await self.websocket.send_json(pong_frame())
        except (ConnectionError, RuntimeError, OSError):
            pass

    # =========================================================================
    # Relays
    # =========================================================================

    async def _relay(
        self,
        frame: ClientFrame,
        room_for: Callable[[int], str],
        event: StoreEvent,
        fields: dict[str, Any],
        exclude_sender: bool = False,
    ) -> None:
        store_id = self._store_id(frame)
        if store_id is None:
            return
        await self.rooms.emit(
            room_for(store_id),
            event,
            fields,
            exclude=self.connection_id if exclude_sender else None,
        )

    async def _on_update_config(self, frame: ClientFrame) -> None:
        await self._relay(frame, store_room, StoreEvent.CONFIG_UPDATED, {
            "tiendaId": self._store_id(frame),
            "config": frame.get("config"),
        })

    async def _on_new_discount_event(self, frame: ClientFrame) -> None:
        await self._relay(frame, store_room, StoreEvent.DISCOUNT_EVENT_CREATED, {
            "tiendaId": self._store_id(frame),
            "evento": frame.get("evento"),
        })

    async def _on_update_discount_event(self, frame: ClientFrame) -> None:
        await self._relay(frame, store_room, StoreEvent.DISCOUNT_EVENT_UPDATED, {
            "tiendaId": self._store_id(frame),
            "eventoId": frame.get("eventoId", "evento_id"),
            "cambios": frame.get("cambios"),
        })

    async def _on_code_used(self, frame: ClientFrame) -> None:
        await self._relay(frame, admin_room, StoreEvent.DISCOUNT_CODE_USED, {
            "tiendaId": self._store_id(frame),
            "codigoInfo": frame.get("codigoInfo", "codigo_info"),
        })

    async def _on_update_order_status(self, frame: ClientFrame) -> None:
        await self._relay(frame, store_room, StoreEvent.ORDER_STATUS_UPDATED, {
            "ordenId": frame.get("ordenId", "orden_id"),
            "numeroOrden": frame.get("numeroOrden", "numero_orden"),
            "nuevoEstado": frame.get("nuevoEstado", "nuevo_estado"),
        })

    async def _on_new_order(self, frame: ClientFrame) -> None:
        await self._relay(
            frame,
            admin_room,
            StoreEvent.NEW_ORDER_RECEIVED,
            {"orden": frame.get("orden")},
            exclude_sender=True,
        )

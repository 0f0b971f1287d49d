"""
Client Reconnection Manager.

Owns one logical connection to the storefront gateway:

1. Opens the transport with a handshake timeout
2. Retries with exponential backoff, up to max_reconnect_attempts; a
   connection lost within stable_connection_time of its handshake counts
   as a failed attempt
3. Replays the store join (and followed orders) after every reconnect
4. Sends an advisory ping every ping_interval while connected
5. Dispatches received events to callbacks, isolating their errors

Joins requested while disconnected are recorded and sent on the next
successful connection, never dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable

from shared.config.logging import get_logger
from shared.config.settings import settings
from ws_client.state import ConnectionState
from ws_client.transport import Transport, TransportFactory, websocket_transport
from ws_gateway.components.core.constants import ClientMessage

logger = get_logger(__name__)

EventCallback = Callable[[Any], Any]
StatusCallback = Callable[[str, str], None]

# Events dispatched locally by the manager
CONNECT_EVENT = "connect"
DISCONNECT_EVENT = "disconnect"


class SocketManager:
    """
    Reconnecting storefront WebSocket client.

    Usage:
        manager = SocketManager("ws://localhost:3000/ws")
        manager.on("orden-actualizada", handle_update)
        await manager.join_store(7)
        await manager.connect()
        ...
        await manager.disconnect()
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory = websocket_transport,
        *,
        max_reconnect_attempts: int = settings.client_max_reconnect_attempts,
        reconnect_delay: float = settings.client_reconnect_delay,
        reconnect_delay_max: float = settings.client_reconnect_delay_max,
        handshake_timeout: float = settings.client_handshake_timeout,
        ping_interval: float = settings.client_ping_interval,
        stable_connection_time: float = settings.client_stable_connection_time,
        on_status: StatusCallback | None = None,
        on_connection_error: Callable[[dict[str, Any]], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.reconnect_delay_max = reconnect_delay_max
        self.handshake_timeout = handshake_timeout
        self.ping_interval = ping_interval
        self.stable_connection_time = stable_connection_time

        self._transport_factory = transport_factory
        self._on_status = on_status
        self._on_connection_error = on_connection_error
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._reconnect_attempts = 0
        self._attempts_before_connect = 0
        self._connected_at = 0.0
        self._closing = False
        self._run_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._connected = asyncio.Event()

        # Intent replayed on every (re)connection
        self._store_id: int | None = None
        self._is_admin = False
        self._followed_orders: set[str] = set()

        self._callbacks: dict[str, list[EventCallback]] = {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def store_id(self) -> int | None:
        return self._store_id

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def get_connection_status(self) -> dict[str, Any]:
        return {
            "connected": self.is_connected,
            "state": self._state.value,
            "store_id": self._store_id,
            "reconnect_attempts": self._reconnect_attempts,
        }

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given failed attempt (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.reconnect_delay * (2 ** (attempt - 1)), self.reconnect_delay_max)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.info(
            "Socket state changed",
            url=self.url,
            previous=self._state.value,
            state=state.value,
            attempts=self._reconnect_attempts,
        )
        self._state = state

    def _status(self, label: str, kind: str) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(label, kind)
        except Exception as e:
            logger.error("Status callback failed", label=label, error=str(e), exc_info=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """
        Start connecting in the background.

        Also restarts a manager that reached the failed state. Calling it
        while a connection loop is already running does nothing.
        """
        if self._run_task is not None and not self._run_task.done():
            return
        self._closing = False
        self._reconnect_attempts = 0
        self._run_task = asyncio.create_task(self._run(), name=f"socket-manager:{self.url}")

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until connected. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def disconnect(self) -> None:
        """
        Close the connection and stop reconnecting.

        Cancels a pending backoff sleep or handshake. Recorded joins are
        kept, so a later connect() restores them.
        """
        self._closing = True
        current = asyncio.current_task()
        tasks = [
            task for task in (self._run_task, self._heartbeat_task)
            if task is not None and not task.done() and task is not current
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._heartbeat_task = None

        await self._close_transport()
        self._connected.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _run(self) -> None:
        while not self._closing:
            self._set_state(ConnectionState.CONNECTING)
            try:
                transport = await asyncio.wait_for(
                    self._transport_factory(self.url),
                    timeout=self.handshake_timeout,
                )
            except Exception as e:
                self._reconnect_attempts += 1
                logger.warning(
                    "Socket connection attempt failed",
                    url=self.url,
                    attempt=self._reconnect_attempts,
                    max_attempts=self.max_reconnect_attempts,
                    error=str(e) or type(e).__name__,
                )
                if self._reconnect_attempts >= self.max_reconnect_attempts:
                    self._fail()
                    return
                self._status("Reconectando...", "warning")
                await self._sleep(self.backoff_delay(self._reconnect_attempts))
                continue

            await self._on_connected(transport)
            reason = await self._receive_loop(transport)
            if self._closing:
                return
            await self._on_transport_lost(reason)
            if not await self._backoff_after_loss():
                return

    async def _backoff_after_loss(self) -> bool:
        """
        Wait before redialing a lost connection. Returns False once the
        manager gave up.
        """
        lived = asyncio.get_running_loop().time() - self._connected_at
        if lived < self.stable_connection_time:
            self._reconnect_attempts = self._attempts_before_connect + 1
            logger.warning(
                "Socket connection dropped right after connecting",
                url=self.url,
                attempt=self._reconnect_attempts,
                max_attempts=self.max_reconnect_attempts,
                lived=round(lived, 3),
            )
            if self._reconnect_attempts >= self.max_reconnect_attempts:
                self._fail()
                return False
        await self._sleep(self.backoff_delay(max(self._reconnect_attempts, 1)))
        return True

    def _fail(self) -> None:
        self._set_state(ConnectionState.FAILED)
        logger.error(
            "Socket gave up reconnecting",
            url=self.url,
            attempts=self._reconnect_attempts,
        )
        self._status("Error de conexión", "error")
        if self._on_connection_error is not None:
            try:
                self._on_connection_error(self.get_connection_status())
            except Exception as e:
                logger.error("Connection error callback failed", error=str(e), exc_info=True)

    async def _on_connected(self, transport: Transport) -> None:
        self._transport = transport
        self._attempts_before_connect = self._reconnect_attempts
        self._reconnect_attempts = 0
        self._connected_at = asyncio.get_running_loop().time()
        self._set_state(ConnectionState.CONNECTED)
        self._connected.set()
        self._status("Conectado", "success")
        await self._rejoin()
        self._heartbeat_task = asyncio.create_task(self._heartbeat(), name=f"socket-heartbeat:{self.url}")
        await self._dispatch(CONNECT_EVENT, None)

    async def _on_transport_lost(self, reason: str) -> None:
        await self._stop_heartbeat()
        await self._close_transport()
        self._connected.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        self._status("Desconectado", "error")
        await self._dispatch(DISCONNECT_EVENT, {"reason": reason})

    async def _rejoin(self) -> None:
        if self._store_id is not None:
            await self.send(ClientMessage.JOIN_STORE, {"tiendaId": self._store_id})
            if self._is_admin:
                await self.send(ClientMessage.JOIN_STORE_ADMIN, {"tiendaId": self._store_id})
        for order_number in sorted(self._followed_orders):
            await self.send(ClientMessage.FOLLOW_ORDER, {"numeroOrden": order_number})

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.close()
        except Exception as e:
            logger.debug("Error closing transport", url=self.url, error=str(e))

    # =========================================================================
    # Heartbeat
    # =========================================================================

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            transport = self._transport
            if transport is None:
                continue
            try:
                await transport.send(json.dumps({"event": ClientMessage.PING}))
            except (ConnectionError, OSError) as e:
                # The receive loop notices the loss
                logger.debug("Heartbeat ping failed", url=self.url, error=str(e))

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # =========================================================================
    # Receiving
    # =========================================================================

    async def _receive_loop(self, transport: Transport) -> str:
        """Dispatch frames until the transport closes. Returns the close reason."""
        while True:
            try:
                raw = await transport.recv()
            except (ConnectionError, OSError) as e:
                return str(e) or "transport closed"
            await self._handle_frame(raw)

    async def _handle_frame(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Ignoring non-JSON frame", url=self.url)
            return
        if not isinstance(message, dict) or not isinstance(message.get("event"), str):
            logger.debug("Ignoring frame without event", url=self.url)
            return
        await self._dispatch(message["event"], message.get("data"))

    def on(self, event: str, callback: EventCallback) -> None:
        """Register a callback. Callbacks of an event run in registration order."""
        self._callbacks.setdefault(event, []).append(callback)

    def off(self, event: str, callback: EventCallback | None = None) -> None:
        """Remove one callback, or every callback of the event."""
        if callback is None:
            self._callbacks.pop(event, None)
            return
        callbacks = self._callbacks.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    async def _dispatch(self, event: str, data: Any) -> None:
        for callback in list(self._callbacks.get(event, ())):
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Event callback failed",
                    event=event,
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                    exc_info=True,
                )

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, event: str, data: Any = None) -> bool:
        """
        Send one frame. Returns False when not connected or the send failed.
        """
        transport = self._transport
        if transport is None or not self.is_connected:
            logger.debug("Send skipped, not connected", event=event)
            return False
        try:
            await transport.send(json.dumps({"event": event, "data": data}))
        except (ConnectionError, OSError) as e:
            logger.warning("Failed to send frame", event=event, error=str(e))
            return False
        return True

    async def join_store(self, store_id: int, admin: bool = False) -> None:
        """
        Join a store's room, and its admin room with admin=True.

        While disconnected the join is only recorded; it is sent once the
        connection is established.
        """
        self._store_id = store_id
        self._is_admin = admin
        if not self.is_connected:
            logger.debug("Join deferred until connected", store_id=store_id, admin=admin)
            return
        await self.send(ClientMessage.JOIN_STORE, {"tiendaId": store_id})
        if admin:
            await self.send(ClientMessage.JOIN_STORE_ADMIN, {"tiendaId": store_id})

    async def leave_store(self, store_id: int | None = None) -> None:
        """Leave a store's rooms (the joined store by default) and forget the join."""
        target = store_id if store_id is not None else self._store_id
        if target is None:
            return
        was_admin = self._is_admin and target == self._store_id
        if target == self._store_id:
            self._store_id = None
            self._is_admin = False
        if not self.is_connected:
            return
        await self.send(ClientMessage.LEAVE_STORE, {"tiendaId": target})
        if was_admin:
            await self.send(ClientMessage.LEAVE_STORE_ADMIN, {"tiendaId": target})

    async def follow_order(self, order_number: str) -> None:
        self._followed_orders.add(order_number)
        if self.is_connected:
            await self.send(ClientMessage.FOLLOW_ORDER, {"numeroOrden": order_number})

    async def unfollow_order(self, order_number: str) -> None:
        self._followed_orders.discard(order_number)
        if self.is_connected:
            await self.send(ClientMessage.UNFOLLOW_ORDER, {"numeroOrden": order_number})

    async def update_order_status(self, order_id: int, order_number: str, new_status: str) -> bool:
        """Relay an order status change to the joined store's room."""
        if self._store_id is None:
            logger.warning("Order status relay without a joined store", order_number=order_number)
            return False
        return await self.send(ClientMessage.UPDATE_ORDER_STATUS, {
            "tiendaId": self._store_id,
            "ordenId": order_id,
            "numeroOrden": order_number,
            "nuevoEstado": new_status,
        })

    async def notify_new_order(self, order: dict[str, Any]) -> bool:
        """Relay a new order to the joined store's admins."""
        if self._store_id is None:
            logger.warning("New order relay without a joined store")
            return False
        return await self.send(ClientMessage.NEW_ORDER, {"tiendaId": self._store_id, "orden": order})

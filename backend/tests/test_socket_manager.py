"""
Tests for the client reconnection manager.

Tests verify:
- Joins requested while disconnected are sent once on connect
- Joins are replayed after every reconnect
- Bounded retries with exponential backoff end in the failed state
- Connections dropped right after the handshake count as failed attempts
- The heartbeat stops with the connection and never forces a reconnect
- The websockets transport keeps the library keep-alive on
- Callback errors never stop dispatch
- disconnect() cancels a pending reconnect
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError

from shared.config.settings import settings
from tests.fakes import TransportFactory
from ws_client import ConnectionState, SocketManager, WebSocketTransport, websocket_transport


async def until(predicate, timeout: float = 1.0) -> None:
    """Poll until predicate() is true or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


class DroppingTransportFactory(TransportFactory):
    """Hands out transports the server closes right after the handshake."""

    async def __call__(self, url: str):
        transport = await super().__call__(url)
        transport.drop()
        return transport


def make_manager(factory, delays=None, **kwargs) -> SocketManager:
    async def fast_sleep(seconds: float) -> None:
        if delays is not None:
            delays.append(seconds)
        await asyncio.sleep(0)

    options = {
        "max_reconnect_attempts": 3,
        "reconnect_delay": 1.0,
        "reconnect_delay_max": 5.0,
        "handshake_timeout": 1.0,
        "ping_interval": 30.0,
        "sleep": fast_sleep,
    }
    options.update(kwargs)
    return SocketManager("ws://test/ws", factory, **options)


class TestBackoff:

    def test_delay_doubles_up_to_max(self):
        manager = SocketManager("ws://test/ws", TransportFactory(), reconnect_delay=1.0, reconnect_delay_max=5.0)

        assert [manager.backoff_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]
        assert manager.backoff_delay(0) == 0.0


class TestJoins:

    @pytest.mark.asyncio
    async def test_join_while_disconnected_is_sent_once_on_connect(self):
        factory = TransportFactory()
        manager = make_manager(factory)

        await manager.join_store(7)
        await manager.connect()
        await until(lambda: factory.transports and factory.last.sent)
        await asyncio.sleep(0.01)

        joins = [f for f in factory.last.sent if f["event"] == "join-tienda"]
        assert joins == [{"event": "join-tienda", "data": {"tiendaId": 7}}]
        assert "join-tienda-admin" not in factory.last.events()
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_admin_join_while_connected(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        await manager.connect()
        assert await manager.wait_connected(timeout=1.0)

        await manager.join_store(7, admin=True)

        assert factory.last.events() == ["join-tienda", "join-tienda-admin"]
        assert manager.get_connection_status()["store_id"] == 7
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_joins_replayed_after_reconnect(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        await manager.join_store(7, admin=True)
        await manager.follow_order("ORD-123456-001")
        await manager.connect()
        await until(lambda: len(factory.transports) == 1 and manager.is_connected)

        factory.last.drop()
        await until(lambda: len(factory.transports) == 2 and manager.is_connected)
        await asyncio.sleep(0.01)

        assert factory.last.events() == ["join-tienda", "join-tienda-admin", "follow-order"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_leave_while_disconnected_forgets_join(self):
        factory = TransportFactory()
        manager = make_manager(factory)

        await manager.join_store(7)
        await manager.leave_store()
        await manager.connect()
        assert await manager.wait_connected(timeout=1.0)
        await asyncio.sleep(0.01)

        assert "join-tienda" not in factory.last.events()
        assert manager.store_id is None
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_leave_admin_store_while_connected(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        await manager.connect()
        assert await manager.wait_connected(timeout=1.0)
        await manager.join_store(7, admin=True)

        await manager.leave_store()

        assert factory.last.events()[-2:] == ["leave-tienda", "leave-tienda-admin"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_send_while_disconnected_returns_false(self):
        manager = make_manager(TransportFactory())

        assert await manager.send("update-config", {"tiendaId": 7}) is False
        assert await manager.notify_new_order({"id": 1}) is False

    @pytest.mark.asyncio
    async def test_relays_carry_joined_store(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        await manager.join_store(7)
        await manager.connect()
        await until(lambda: manager.is_connected)

        assert await manager.update_order_status(1, "ORD-1", "confirmada") is True

        assert factory.last.sent[-1] == {
            "event": "update-orden-status",
            "data": {"tiendaId": 7, "ordenId": 1, "numeroOrden": "ORD-1", "nuevoEstado": "confirmada"},
        }
        await manager.disconnect()


class TestReconnection:

    @pytest.mark.asyncio
    async def test_status_callbacks_follow_connection(self):
        factory = TransportFactory()
        statuses = []
        manager = make_manager(factory, on_status=lambda label, kind: statuses.append((label, kind)))

        await manager.connect()
        await until(lambda: manager.is_connected)
        factory.last.drop()
        await until(lambda: len(factory.transports) == 2 and manager.is_connected)

        assert statuses == [
            ("Conectado", "success"),
            ("Desconectado", "error"),
            ("Conectado", "success"),
        ]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_bounded_retries_end_in_failed(self):
        factory = TransportFactory()
        factory.fail_next(100)
        delays = []
        errors = []
        statuses = []
        manager = make_manager(
            factory,
            delays=delays,
            on_status=lambda label, kind: statuses.append((label, kind)),
            on_connection_error=errors.append,
        )

        await manager.connect()
        await until(lambda: manager.state is ConnectionState.FAILED)

        assert factory.attempts == 3
        assert delays == [1.0, 2.0]
        assert statuses[-1] == ("Error de conexión", "error")
        assert errors == [{
            "connected": False,
            "state": "failed",
            "store_id": None,
            "reconnect_attempts": 3,
        }]

    @pytest.mark.asyncio
    async def test_success_resets_attempts(self):
        factory = TransportFactory()
        factory.fail_next(2)
        manager = make_manager(factory)

        await manager.connect()
        await until(lambda: manager.is_connected)

        assert factory.attempts == 3
        assert manager.reconnect_attempts == 0
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_handshake_timeout_counts_as_failed_attempt(self):
        async def hanging_factory(url):
            await asyncio.sleep(10)

        manager = make_manager(hanging_factory, handshake_timeout=0.02, max_reconnect_attempts=2)

        await manager.connect()
        await until(lambda: manager.state is ConnectionState.FAILED)

        assert manager.reconnect_attempts == 2

    @pytest.mark.asyncio
    async def test_connections_dropped_on_arrival_end_in_failed(self):
        factory = DroppingTransportFactory()
        delays = []
        errors = []
        manager = make_manager(factory, delays=delays, on_connection_error=errors.append)

        await manager.connect()
        await until(lambda: manager.state is ConnectionState.FAILED)

        assert factory.attempts == 3
        assert delays == [1.0, 2.0]
        assert errors[0]["reconnect_attempts"] == 3

    @pytest.mark.asyncio
    async def test_loss_after_stable_connection_backs_off_from_first_delay(self):
        factory = TransportFactory()
        delays = []
        manager = make_manager(factory, delays=delays, stable_connection_time=0.0)
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.drop()
        await until(lambda: len(factory.transports) == 2 and manager.is_connected)
        factory.last.drop()
        await until(lambda: len(factory.transports) == 3 and manager.is_connected)

        assert delays == [1.0, 1.0]
        assert manager.reconnect_attempts == 0
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connect_after_failed_starts_over(self):
        factory = TransportFactory()
        factory.fail_next(3)
        manager = make_manager(factory)
        await manager.connect()
        await until(lambda: manager.state is ConnectionState.FAILED)

        await manager.connect()
        await until(lambda: manager.is_connected)

        assert factory.attempts == 4
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_reconnect(self):
        factory = TransportFactory()
        factory.fail_next(100)
        manager = SocketManager(
            "ws://test/ws",
            factory,
            max_reconnect_attempts=5,
            reconnect_delay=10.0,
            reconnect_delay_max=10.0,
        )

        await manager.connect()
        await until(lambda: factory.attempts == 1)
        await asyncio.wait_for(manager.disconnect(), timeout=1.0)
        await asyncio.sleep(0.05)

        assert factory.attempts == 1
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_closes_transport_without_reconnecting(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        await manager.connect()
        await until(lambda: manager.is_connected)

        await manager.disconnect()
        await asyncio.sleep(0.02)

        assert factory.last.closed
        assert len(factory.transports) == 1
        assert manager.get_connection_status()["connected"] is False


class TestDispatch:

    @pytest.mark.asyncio
    async def test_events_reach_callbacks_in_order(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        received = []
        manager.on("nueva-orden", lambda data: received.append(("first", data["orden"]["id"])))
        manager.on("nueva-orden", lambda data: received.append(("second", data["orden"]["id"])))
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.feed("nueva-orden", {"orden": {"id": 5}})
        await until(lambda: len(received) == 2)

        assert received == [("first", 5), ("second", 5)]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_others(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        received = []

        def broken(data):
            raise ValueError("boom")

        async def async_callback(data):
            received.append(data["ordenId"])

        manager.on("orden-actualizada", broken)
        manager.on("orden-actualizada", async_callback)
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.feed("orden-actualizada", {"ordenId": 1})
        factory.last.feed("orden-actualizada", {"ordenId": 2})
        await until(lambda: len(received) == 2)

        assert received == [1, 2]
        assert manager.is_connected
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_frames_are_ignored(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        received = []
        manager.on("pong", received.append)
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.feed_raw("not json")
        factory.last.feed_raw('["no", "event"]')
        factory.last.feed("pong", {"timestamp": "t"})
        await until(lambda: received)

        assert received == [{"timestamp": "t"}]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_off_removes_callbacks(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        received = []

        def callback(data):
            received.append(data)

        manager.on("config-updated", callback)
        manager.off("config-updated", callback)
        manager.on("pong", received.append)
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.feed("config-updated", {"tiendaId": 7})
        factory.last.feed("pong", None)
        await until(lambda: received)

        assert received == [None]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connect_and_disconnect_events(self):
        factory = TransportFactory()
        manager = make_manager(factory)
        events = []
        manager.on("connect", lambda data: events.append("connect"))
        manager.on("disconnect", lambda data: events.append(("disconnect", data["reason"])))
        await manager.connect()
        await until(lambda: manager.is_connected)

        factory.last.drop()
        await until(lambda: len(events) == 3)

        assert events == ["connect", ("disconnect", "connection lost"), "connect"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_heartbeat_sends_ping(self):
        factory = TransportFactory()
        manager = make_manager(factory, ping_interval=0.01)
        await manager.connect()
        await until(lambda: manager.is_connected)

        await until(lambda: "ping" in factory.last.events())

        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_heartbeat_stops_when_connection_is_lost(self):
        factory = TransportFactory()
        manager = make_manager(factory, ping_interval=0.01, max_reconnect_attempts=1)
        await manager.connect()
        await until(lambda: manager.is_connected)
        await until(lambda: "ping" in factory.last.events())
        lost = factory.last

        lost.drop()
        await until(lambda: manager.state is ConnectionState.FAILED)
        attempts = lost.send_attempts
        await asyncio.sleep(0.05)

        assert lost.send_attempts == attempts
        assert not [t for t in asyncio.all_tasks() if t.get_name().startswith("socket-heartbeat")]

    @pytest.mark.asyncio
    async def test_unanswered_pings_keep_the_connection(self):
        factory = TransportFactory()
        manager = make_manager(factory, ping_interval=0.01)
        await manager.connect()

        await until(lambda: factory.transports and factory.last.events().count("ping") >= 5)

        assert manager.is_connected
        assert factory.attempts == 1
        assert len(factory.transports) == 1
        await manager.disconnect()


class TestWebSocketTransport:

    @pytest.mark.asyncio
    async def test_library_keepalive_is_enabled(self):
        with patch("ws_client.transport.connect", new=AsyncMock()) as connect:
            await websocket_transport("ws://test/ws", origin="http://localhost:3000")

        kwargs = connect.await_args.kwargs
        assert kwargs["ping_interval"] == settings.client_keepalive_interval
        assert kwargs["ping_timeout"] == settings.client_keepalive_timeout
        assert kwargs["ping_interval"] is not None

    @pytest.mark.asyncio
    async def test_keepalive_timeout_surfaces_as_connection_error(self):
        connection = AsyncMock()
        connection.recv.side_effect = ConnectionClosedError(None, None)
        transport = WebSocketTransport(connection)

        with pytest.raises(ConnectionError):
            await transport.recv()

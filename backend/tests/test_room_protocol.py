"""
Tests for RoomProtocol, ConnectionBroadcaster and ConnectionManager.

Tests verify:
- Emission reaches exactly the members of a room
- Sender exclusion
- Dead sockets are detached without affecting other members
- Per-room delivery order
- Connection limit and stale connection cleanup
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketState

from tests.fakes import make_socket
from ws_gateway.components.events.types import NotificationEvent, StoreEvent
from ws_gateway.components.rooms.keys import admin_room, customer_room, order_room, store_room
from ws_gateway.components.rooms.protocol import RoomProtocol
from ws_gateway.connection_manager import ConnectionManager


def _attach(rooms: RoomProtocol, connection_id: str):
    ws = make_socket()
    rooms.attach(connection_id, ws)
    return ws


class TestRoomMembership:

    def test_join_helpers_return_room_keys(self):
        rooms = RoomProtocol()

        assert rooms.join_store(7, "a") == store_room(7)
        assert rooms.join_store_admin(7, "a") == admin_room(7)
        assert rooms.join_store_customers(7, "a") == customer_room(7)
        assert rooms.follow_order("ORD-1", "a") == order_room("ORD-1")
        assert rooms.registry.rooms_of("a") == frozenset({
            store_room(7), admin_room(7), customer_room(7), order_room("ORD-1"),
        })

    def test_joining_store_does_not_subscribe_customers(self):
        rooms = RoomProtocol()

        rooms.join_store(7, "a")

        assert rooms.registry.size_of(customer_room(7)) == 0

    def test_detach_leaves_every_room(self):
        rooms = RoomProtocol()
        _attach(rooms, "a")
        rooms.join_store(7, "a")
        rooms.join_store_admin(7, "a")

        left = rooms.detach("a")

        assert left == {store_room(7), admin_room(7)}
        assert not rooms.is_attached("a")


class TestEmission:

    @pytest.mark.asyncio
    async def test_emit_reaches_only_room_members(self):
        rooms = RoomProtocol()
        ws_a = _attach(rooms, "a")
        ws_b = _attach(rooms, "b")
        ws_other = _attach(rooms, "c")
        rooms.join_store(7, "a")
        rooms.join_store(7, "b")
        rooms.join_store(8, "c")

        delivered = await rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {"tiendaId": 7})

        assert delivered == 2
        ws_a.send_json.assert_awaited_once()
        ws_b.send_json.assert_awaited_once()
        ws_other.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_frame_format(self):
        rooms = RoomProtocol()
        ws = _attach(rooms, "a")
        rooms.join_store(7, "a")

        await rooms.emit(store_room(7), "config-updated", {"tiendaId": 7})

        frame = ws.send_json.await_args.args[0]
        assert set(frame) == {"event", "data"}
        assert frame["event"] == "config-updated"
        assert set(frame["data"]) == {"tiendaId", "timestamp"}
        assert frame["data"]["tiendaId"] == 7

    def test_notification_message_keeps_payload_timestamp(self):
        notification = NotificationEvent.create(StoreEvent.NEW_ORDER, {"tiendaId": 7, "timestamp": "t0"})

        assert notification.to_message() == {
            "event": StoreEvent.NEW_ORDER.value,
            "data": {"tiendaId": 7, "timestamp": "t0"},
        }

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self):
        rooms = RoomProtocol()

        assert await rooms.emit(store_room(99), StoreEvent.NEW_ORDER, {}) == 0

    @pytest.mark.asyncio
    async def test_exclude_sender(self):
        rooms = RoomProtocol()
        sender = _attach(rooms, "a")
        other = _attach(rooms, "b")
        rooms.join_store_admin(7, "a")
        rooms.join_store_admin(7, "b")

        delivered = await rooms.emit(admin_room(7), StoreEvent.NEW_ORDER_RECEIVED, {}, exclude="a")

        assert delivered == 1
        sender.send_json.assert_not_awaited()
        other.send_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_payload_is_copied(self):
        rooms = RoomProtocol()
        ws = _attach(rooms, "a")
        rooms.join_store(7, "a")
        payload = {"orden": {"items": [1]}}

        await rooms.emit(store_room(7), StoreEvent.NEW_ORDER, payload)
        payload["orden"]["items"].append(2)

        assert ws.send_json.await_args.args[0]["data"]["orden"]["items"] == [1]

    @pytest.mark.asyncio
    async def test_failed_socket_is_detached_others_still_receive(self):
        dead = []

        async def on_dead(connection_id):
            dead.append(connection_id)

        rooms = RoomProtocol(on_dead_connection=on_dead)
        broken = _attach(rooms, "a")
        broken.send_json = AsyncMock(side_effect=RuntimeError("socket closed"))
        healthy = _attach(rooms, "b")
        rooms.join_store(7, "a")
        rooms.join_store(7, "b")

        delivered = await rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {})

        assert delivered == 1
        healthy.send_json.assert_awaited_once()
        assert dead == ["a"]
        assert not rooms.is_attached("a")
        assert rooms.registry.members(store_room(7)) == frozenset({"b"})

    @pytest.mark.asyncio
    async def test_closed_socket_is_not_written(self):
        rooms = RoomProtocol()
        closed = _attach(rooms, "a")
        closed.client_state = WebSocketState.DISCONNECTED
        rooms.join_store(7, "a")

        delivered = await rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {})

        assert delivered == 0
        closed.send_json.assert_not_awaited()
        assert not rooms.is_attached("a")

    @pytest.mark.asyncio
    async def test_slow_socket_times_out(self):
        rooms = RoomProtocol(send_timeout=0.05)
        slow = _attach(rooms, "a")

        async def never_completes(_):
            await asyncio.sleep(10)

        slow.send_json = AsyncMock(side_effect=never_completes)
        rooms.join_store(7, "a")

        delivered = await rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {})

        assert delivered == 0
        assert not rooms.is_attached("a")

    @pytest.mark.asyncio
    async def test_events_to_one_room_arrive_in_emission_order(self):
        rooms = RoomProtocol()
        received = []

        async def record(frame):
            await asyncio.sleep(0)
            received.append(frame["data"]["n"])

        ws = _attach(rooms, "a")
        ws.send_json = AsyncMock(side_effect=record)
        rooms.join_store(7, "a")

        await asyncio.gather(*[
            rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {"n": n}) for n in range(10)
        ])

        assert received == list(range(10))

    @pytest.mark.asyncio
    async def test_send_to_single_connection(self):
        rooms = RoomProtocol()
        ws = _attach(rooms, "a")

        assert await rooms.send_to("a", StoreEvent.PONG) is True
        assert await rooms.send_to("missing", StoreEvent.PONG) is False
        assert ws.send_json.await_args.args[0]["event"] == "pong"

    @pytest.mark.asyncio
    async def test_batches_cover_every_target(self):
        rooms = RoomProtocol(batch_size=3)
        sockets = [_attach(rooms, f"c{n}") for n in range(10)]
        for n in range(10):
            rooms.join_store(1, f"c{n}")

        delivered = await rooms.emit(store_room(1), StoreEvent.CONFIG_UPDATED, {})

        assert delivered == 10
        assert all(ws.send_json.await_count == 1 for ws in sockets)


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_connect_attaches_and_counts(self):
        manager = ConnectionManager(max_total_connections=2)
        ws = make_socket()
        ws.accept = AsyncMock()

        connection_id = await manager.connect(ws)

        assert manager.rooms.is_attached(connection_id)
        assert manager.total_connections == 1
        ws.accept.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_capacity_limit(self):
        manager = ConnectionManager(max_total_connections=1)
        first = make_socket()
        first.accept = AsyncMock()
        second = make_socket()
        second.accept = AsyncMock()

        await manager.connect(first)

        with pytest.raises(ConnectionError):
            await manager.connect(second)
        second.accept.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_accept_releases_slot(self):
        manager = ConnectionManager(max_total_connections=1)
        ws = make_socket()
        ws.accept = AsyncMock(side_effect=RuntimeError("handshake failed"))

        with pytest.raises(ConnectionError):
            await manager.connect(ws)

        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        manager = ConnectionManager()
        ws = make_socket()
        ws.accept = AsyncMock()
        connection_id = await manager.connect(ws)
        manager.rooms.join_store(7, connection_id)

        left = await manager.disconnect(connection_id)
        await manager.disconnect(connection_id)

        assert left == {store_room(7)}
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_dead_connection_releases_slot(self):
        manager = ConnectionManager()
        ws = make_socket()
        ws.accept = AsyncMock()
        ws.send_json = AsyncMock(side_effect=RuntimeError("gone"))
        connection_id = await manager.connect(ws)
        manager.rooms.join_store(7, connection_id)

        await manager.rooms.emit(store_room(7), StoreEvent.CONFIG_UPDATED, {})

        assert manager.total_connections == 0
        assert manager.heartbeat_tracker.tracked_count == 0

    @pytest.mark.asyncio
    async def test_cleanup_stale_connections(self):
        manager = ConnectionManager(heartbeat_timeout=0.0)
        ws = make_socket()
        ws.accept = AsyncMock()
        connection_id = await manager.connect(ws)
        manager.rooms.join_store(7, connection_id)
        await asyncio.sleep(0.01)

        cleaned = await manager.cleanup_stale_connections()

        assert cleaned == 1
        assert manager.registry.size_of(store_room(7)) == 0
        ws.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_socket_stats_per_store(self):
        manager = ConnectionManager()
        ids = []
        for _ in range(3):
            ws = make_socket()
            ws.accept = AsyncMock()
            ids.append(await manager.connect(ws))
        manager.rooms.join_store(7, ids[0])
        manager.rooms.join_store(7, ids[1])
        manager.rooms.join_store(8, ids[2])
        manager.rooms.join_store_customers(8, ids[2])

        stats = manager.get_socket_stats()

        assert stats == {
            "total_connections": 3,
            "tiendas_activas": 2,
            "connections_por_tienda": {"7": 2, "8": 1},
        }

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_connections(self):
        manager = ConnectionManager()
        ws = make_socket()
        ws.accept = AsyncMock()
        await manager.connect(ws)

        await manager.shutdown()

        assert manager.is_shutdown
        assert manager.rooms.attached_count == 0
        with pytest.raises(ConnectionError):
            await manager.connect(make_socket())

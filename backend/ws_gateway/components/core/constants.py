"""
WebSocket Gateway Constants.

Close codes, timeouts and the names of the messages clients send.

Usage:
    from ws_gateway.components.core.constants import WSCloseCode, WSConstants

    await websocket.close(code=WSCloseCode.SERVER_OVERLOADED)
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class WSCloseCode(IntEnum):
    """
    WebSocket close codes.

    Standard codes (1000-1999) are defined in RFC 6455.
    Custom codes (4000-4999) are application specific.
    """

    # Standard codes
    NORMAL = 1000
    GOING_AWAY = 1001
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    SERVER_OVERLOADED = 1013

    # Application codes
    FORBIDDEN = 4003


class WSConstants:
    """Timeouts and sizing for the gateway."""

    # WS_ACCEPT_TIMEOUT: 5 seconds
    # A client that does not finish the handshake in time is dropped
    # instead of holding a slot.
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # SEND_TIMEOUT: 5 seconds per frame. A socket slower than this is marked dead.
    SEND_TIMEOUT: Final[float] = 5.0

    # ROOM_LOCK_CLEANUP_THRESHOLD: cached per-room send locks before unheld
    # locks are evicted.
    ROOM_LOCK_CLEANUP_THRESHOLD: Final[int] = 400

    # LOCK_CLEANUP_HYSTERESIS_RATIO: eviction brings the cache down to 80%
    # of the threshold so it does not run again on the next new room.
    LOCK_CLEANUP_HYSTERESIS_RATIO: Final[float] = 0.8

    # LOCK_CLEANUP_CYCLE: evict room locks every 5 heartbeat cleanup cycles
    LOCK_CLEANUP_CYCLE: Final[int] = 5


class ClientMessage:
    """Event names clients send to the gateway."""

    JOIN_STORE: Final[str] = "join-tienda"
    LEAVE_STORE: Final[str] = "leave-tienda"
    JOIN_STORE_ADMIN: Final[str] = "join-tienda-admin"
    LEAVE_STORE_ADMIN: Final[str] = "leave-tienda-admin"
    JOIN_STORE_CUSTOMERS: Final[str] = "join-tienda-cliente"
    FOLLOW_ORDER: Final[str] = "follow-order"
    UNFOLLOW_ORDER: Final[str] = "unfollow-order"
    PING: Final[str] = "ping"

    # Relays: a client publishes a change and the gateway re-emits it to the room
    UPDATE_CONFIG: Final[str] = "update-config"
    NEW_DISCOUNT_EVENT: Final[str] = "nuevo-evento"
    UPDATE_DISCOUNT_EVENT: Final[str] = "update-evento"
    CODE_USED: Final[str] = "codigo-usado"
    UPDATE_ORDER_STATUS: Final[str] = "update-orden-status"
    NEW_ORDER: Final[str] = "nueva-orden"


# Heartbeat message accepted as plain text
MSG_PING_PLAIN: Final[str] = "ping"


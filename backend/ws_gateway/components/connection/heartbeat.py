"""
Heartbeat Tracker for WebSocket Gateway.

Tracks last activity time for each connection and identifies stale
connections that stopped sending messages or pings.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import MSG_PING_PLAIN
from ws_gateway.components.events.types import StoreEvent, utc_timestamp

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class HeartbeatTracker:
    """
    Tracks heartbeat timestamps for connections, keyed by connection id.

    Thread-safe: all dictionary operations run under a threading.Lock.

    A connection's last activity is recorded when it is established and
    whenever any message is received. Connections without activity for
    longer than the timeout are stale.
    """

    def __init__(self, timeout_seconds: float = 60.0):
        """
        Initialize heartbeat tracker.

        Args:
            timeout_seconds: Seconds without activity before connection is stale.
        """
        self._timeout = timeout_seconds
        self._last_heartbeat: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def timeout(self) -> float:
        """Get the heartbeat timeout in seconds."""
        return self._timeout

    @property
    def tracked_count(self) -> int:
        """Get number of connections being tracked."""
        with self._lock:
            return len(self._last_heartbeat)

    def record(self, connection_id: str, timestamp: float | None = None) -> None:
        """
        Record activity from a connection.

        Args:
            connection_id: The connection to record.
            timestamp: Optional Unix timestamp. If None, uses current time.
        """
        with self._lock:
            self._last_heartbeat[connection_id] = timestamp if timestamp is not None else time.time()

    def remove(self, connection_id: str) -> None:
        """Stop tracking a connection."""
        with self._lock:
            self._last_heartbeat.pop(connection_id, None)

    def get_last_activity(self, connection_id: str) -> float | None:
        """Unix timestamp of last activity, or None if not tracked."""
        with self._lock:
            return self._last_heartbeat.get(connection_id)

    def is_stale(self, connection_id: str, now: float | None = None) -> bool:
        """True if the connection had no activity within the timeout period."""
        with self._lock:
            last_time = self._last_heartbeat.get(connection_id)
        if last_time is None:
            return True  # Unknown connections are considered stale
        now = now if now is not None else time.time()
        return now - last_time > self._timeout

    def cleanup_stale(self, now: float | None = None) -> list[str]:
        """
        Remove and return stale connections from tracking.

        Identifying and removing happen under one lock acquisition.
        """
        now = now if now is not None else time.time()
        stale = []
        with self._lock:
            for connection_id, last_time in list(self._last_heartbeat.items()):
                if now - last_time > self._timeout:
                    stale.append(connection_id)
                    del self._last_heartbeat[connection_id]
        return stale

    def get_stats(self) -> dict[str, float | int]:
        """Get heartbeat tracker statistics."""
        with self._lock:
            now = time.time()
            ages = [now - t for t in self._last_heartbeat.values()]
            tracked = len(self._last_heartbeat)

        return {
            "tracked_connections": tracked,
            "timeout_seconds": self._timeout,
            "oldest_heartbeat_age": max(ages) if ages else 0,
        }


def pong_frame() -> dict[str, object]:
    """Frame sent in reply to a ping."""
    return {"event": StoreEvent.PONG.value, "data": {"timestamp": utc_timestamp()}}


def is_ping(data: str) -> bool:
    """True for the plain-text heartbeat."""
    return data.strip() == MSG_PING_PLAIN


async def handle_heartbeat(ws: WebSocket, data: str) -> bool:
    """
    Respond to a plain-text ping with a pong frame.

    JSON pings ({"event": "ping"}) are routed by the endpoint like any
    other client message.

    Args:
        ws: The WebSocket connection.
        data: The received message data.

    Returns:
        True if message was a heartbeat and was handled, False otherwise.
    """
    if not is_ping(data):
        return False
    try:
        await ws.send_json(pong_frame())
    except (ConnectionError, RuntimeError, OSError):
        # Connection may have closed - caller will handle cleanup
        pass
    except Exception as e:
        logger.warning(
            "Unexpected error sending heartbeat response",
            error=type(e).__name__,
            message=str(e),
        )
    return True

"""
Connection Broadcaster.

Handles sending frames to WebSocket connections. Room membership and
ordering live in RoomProtocol; this module only knows sockets.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette does not expose transitional states, so a socket may look
    connected briefly after a disconnect started.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class ConnectionBroadcaster:
    """
    Sends frames to one or many connections.

    Sends to a list of targets run in parallel batches. A socket that is
    closed, raises, or does not accept the frame within the send timeout
    is reported through the mark-dead callback; the other targets are
    unaffected.
    """

    def __init__(
        self,
        mark_dead_callback: Callable[[str], Awaitable[None]],
        batch_size: int = 50,
        send_timeout: float = WSConstants.SEND_TIMEOUT,
    ) -> None:
        """
        Initialize broadcaster.

        Args:
            mark_dead_callback: Called with the connection id of a failed socket.
            batch_size: Number of sockets sent to in parallel.
            send_timeout: Seconds allowed for a single send.
        """
        self._mark_dead = mark_dead_callback
        self._batch_size = max(1, batch_size)
        self._send_timeout = send_timeout
        self._sent_total = 0
        self._failed_total = 0

    async def send(
        self,
        connection_id: str,
        ws: "WebSocket",
        payload: dict[str, Any],
    ) -> bool:
        """
        Send to a single connection, returning success status.

        Args:
            connection_id: Connection identifier (reported when the send fails).
            ws: The WebSocket connection.
            payload: Frame to send as JSON.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not is_ws_connected(ws):
            await self._mark_dead(connection_id)
            return False
        try:
            await asyncio.wait_for(ws.send_json(payload), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Send timed out", connection_id=connection_id, timeout=self._send_timeout)
        except Exception as e:
            logger.debug("Send failed", connection_id=connection_id, error=str(e))
        await self._mark_dead(connection_id)
        return False

    async def broadcast(
        self,
        targets: list[tuple[str, "WebSocket"]],
        payload: dict[str, Any],
        context: str = "broadcast",
    ) -> int:
        """
        Send to multiple connections.

        Args:
            targets: (connection id, socket) pairs.
            payload: Frame to send.
            context: Context string for logging.

        Returns:
            Number of connections that received the frame.
        """
        if not targets:
            return 0

        sent = 0
        failed = 0
        for i in range(0, len(targets), self._batch_size):
            batch = targets[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self.send(cid, ws, payload) for cid, ws in batch],
                return_exceptions=True,
            )
            for result in results:
                if result is True:
                    sent += 1
                else:
                    failed += 1
                    if isinstance(result, Exception):
                        logger.debug("Batch send exception", context=context, error=str(result))

        self._sent_total += sent
        self._failed_total += failed
        if failed:
            logger.debug(
                "Broadcast completed with failures",
                context=context,
                sent=sent,
                failed=failed,
            )
        return sent

    def get_stats(self) -> dict[str, int]:
        """Get broadcaster statistics."""
        return {
            "frames_sent_total": self._sent_total,
            "frames_failed_total": self._failed_total,
        }

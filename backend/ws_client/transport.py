"""
Client transport.

SocketManager talks to a Transport: anything with async send/recv/close
over text frames. The default factory opens a connection with the
websockets library; tests inject an in-memory transport.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from shared.config.settings import settings


class Transport(Protocol):
    """Text-frame connection used by SocketManager."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str:
        """
        Next text frame.

        Raises:
            ConnectionError: The connection was closed.
        """
        ...

    async def close(self) -> None: ...


TransportFactory = Callable[[str], Awaitable[Transport]]


class WebSocketTransport:
    """Transport over a websockets client connection."""

    def __init__(self, connection: ClientConnection):
        self._connection = connection

    async def send(self, message: str) -> None:
        try:
            await self._connection.send(message)
        except ConnectionClosed as e:
            raise ConnectionError(f"Connection closed: {e}") from e

    async def recv(self) -> str:
        try:
            frame = await self._connection.recv()
        except ConnectionClosed as e:
            raise ConnectionError(f"Connection closed: {e}") from e
        if isinstance(frame, bytes):
            return frame.decode("utf-8", errors="replace")
        return frame

    async def close(self) -> None:
        await self._connection.close()


async def websocket_transport(
    url: str,
    origin: str | None = None,
    max_size: int | None = 1024 * 1024,
    keepalive_interval: float | None = settings.client_keepalive_interval,
    keepalive_timeout: float | None = settings.client_keepalive_timeout,
) -> WebSocketTransport:
    """
    Open a WebSocket connection.

    The handshake timeout is applied by SocketManager, so the library's own
    open timeout is disabled here. Liveness is left to the library's
    keep-alive: a peer that stops answering pings for keepalive_timeout
    seconds closes the connection, and recv() raises ConnectionError.
    """
    connection = await connect(
        url,
        origin=origin,
        open_timeout=None,
        ping_interval=keepalive_interval,
        ping_timeout=keepalive_timeout,
        max_size=max_size,
    )
    return WebSocketTransport(connection)

"""Core constants for the WebSocket gateway."""

from ws_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    ClientMessage,
    MSG_PING_PLAIN,
)

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "ClientMessage",
    "MSG_PING_PLAIN",
]

"""
Connection states of the client.

    disconnected -> connecting -> connected -> (disconnected | connecting)

failed is terminal: entered after max_reconnect_attempts consecutive
failed attempts, left only by an explicit connect().
"""

from enum import Enum


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"

"""
Event names and value objects exchanged over the gateway.
"""

from ws_gateway.components.events.types import (
    StoreEvent,
    NotificationEvent,
    ClientFrame,
    utc_timestamp,
)

__all__ = [
    "StoreEvent",
    "NotificationEvent",
    "ClientFrame",
    "utc_timestamp",
]

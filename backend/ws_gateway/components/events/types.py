"""
Event Value Objects for WebSocket Gateway.

Wire format, both directions:

    {"event": "<name>", "data": {...}}

Frames sent by the server always carry an ISO 8601 "timestamp" inside data.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Self

from shared.config.logging import get_logger

logger = get_logger(__name__)


class StoreEvent(str, Enum):
    """
    Event names emitted to storefront clients.

    Names are forwarded verbatim; clients subscribe by these strings.
    """

    # Orders
    NEW_ORDER = "nueva-orden"
    NEW_ORDER_RECEIVED = "nueva-orden-recibida"
    ORDER_UPDATED = "orden-actualizada"
    ORDER_STATUS_UPDATED = "orden-status-updated"

    # Store configuration
    CONFIG_UPDATED = "config-updated"

    # Promotional events (discount codes)
    DISCOUNT_EVENT_NEW = "nuevo-evento"
    DISCOUNT_EVENT_CREATED = "evento-created"
    DISCOUNT_EVENT_CHANGED = "evento-actualizado"
    DISCOUNT_EVENT_UPDATED = "evento-updated"
    DISCOUNT_EVENT_REMOVED = "evento-eliminado"
    DISCOUNT_EVENT_DELETED = "evento-deleted"
    DISCOUNT_CODE_USED = "codigo-discount-usado"

    # Notifications and protocol replies
    CUSTOM_NOTIFICATION = "notificacion-personalizada"
    CONNECTION_STATUS = "connection-status"
    SUBSCRIPTION_CONFIRMED = "suscripcion-confirmada"
    PONG = "pong"


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def event_name(event: StoreEvent | str) -> str:
    """Wire name of an event given as enum member or plain string."""
    return event.value if isinstance(event, StoreEvent) else str(event)


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """
    Immutable notification ready to be sent to a room.

    The payload is deep-copied at construction so later mutation by the
    caller does not change what is delivered.

    Attributes:
        event_name: Wire event name.
        data: Event payload.
        timestamp: ISO 8601 creation time.
    """

    event_name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_timestamp)

    @classmethod
    def create(
        cls,
        event: StoreEvent | str,
        data: dict[str, Any] | None = None,
    ) -> Self:
        """Build an event, copying the payload."""
        return cls(
            event_name=event_name(event),
            data=copy.deepcopy(data) if data else {},
        )

    def to_message(self) -> dict[str, Any]:
        """Wire frame: the payload fields plus the timestamp."""
        return {
            "event": self.event_name,
            "data": {**self.data, "timestamp": self.data.get("timestamp", self.timestamp)},
        }


@dataclass(frozen=True, slots=True)
class ClientFrame:
    """
    A message received from a client.

    Attributes:
        event: Event name sent by the client.
        data: Payload; scalars (e.g. a bare store id) are kept as sent.
    """

    event: str
    data: Any = None

    @classmethod
    def from_text(cls, text: str) -> Self:
        """
        Parse a JSON frame.

        Raises:
            ValueError: If the text is not a JSON object with a string "event".
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON frame: {e.msg}") from e

        if not isinstance(raw, dict):
            raise ValueError("Frame must be a JSON object")

        name = raw.get("event")
        if not isinstance(name, str) or not name:
            raise ValueError("Frame must carry an event name")

        return cls(event=name, data=raw.get("data"))

    def get(self, *names: str) -> Any:
        """
        First present value among the given keys of a dict payload.

        Clients send either camelCase or snake_case keys.
        """
        if not isinstance(self.data, dict):
            return None
        for name in names:
            if name in self.data:
                return self.data[name]
        return None

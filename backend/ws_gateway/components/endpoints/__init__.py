"""WebSocket endpoints."""

from ws_gateway.components.endpoints.store import StoreEndpoint

__all__ = ["StoreEndpoint"]

"""
WebSocket Gateway.

Real-time layer for the storefront: connection registry, room protocol
and event fan-out to per-store rooms.
"""

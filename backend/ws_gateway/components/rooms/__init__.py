"""
Rooms: key formulas and the join/leave/emit protocol.
"""

from ws_gateway.components.rooms.keys import (
    store_room,
    admin_room,
    customer_room,
    order_room,
    store_id_of,
)
from ws_gateway.components.rooms.protocol import RoomProtocol

__all__ = [
    "store_room",
    "admin_room",
    "customer_room",
    "order_room",
    "store_id_of",
    "RoomProtocol",
]

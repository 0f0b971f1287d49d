"""
Room key formulas.

    store:{store_id}              everyone looking at a store
    store-admin:{store_id}        the store's admin panels
    store:{store_id}:customers    customers subscribed to store notifications
    order:{order_number}          clients tracking one order

Joining the general store room does not subscribe to the customer room.
"""

from __future__ import annotations

from typing import Final

STORE_PREFIX: Final[str] = "store:"
ADMIN_PREFIX: Final[str] = "store-admin:"
CUSTOMERS_SUFFIX: Final[str] = ":customers"
ORDER_PREFIX: Final[str] = "order:"


def store_room(store_id: int | str) -> str:
    """General room of a store."""
    return f"{STORE_PREFIX}{store_id}"


def admin_room(store_id: int | str) -> str:
    """Admin room of a store."""
    return f"{ADMIN_PREFIX}{store_id}"


def customer_room(store_id: int | str) -> str:
    """Customer subscription room of a store."""
    return f"{STORE_PREFIX}{store_id}{CUSTOMERS_SUFFIX}"


def order_room(order_number: str) -> str:
    """Tracking room of one order."""
    return f"{ORDER_PREFIX}{order_number}"


def store_id_of(key: str) -> str | None:
    """
    Store id of a general store room key, None for any other room.

    >>> store_id_of("store:7")
    '7'
    >>> store_id_of("store:7:customers") is None
    True
    """
    if not key.startswith(STORE_PREFIX) or key.endswith(CUSTOMERS_SUFFIX):
        return None
    return key[len(STORE_PREFIX):] or None

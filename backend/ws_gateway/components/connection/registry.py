"""
Connection Registry.

Tracks which connections are members of which rooms. Rooms are plain
string keys (see ws_gateway.components.rooms.keys); the registry does not
interpret them.

Keeps a reverse index (connection -> rooms) so a disconnect removes the
connection from every room without scanning all of them.
"""

from __future__ import annotations

import threading

from shared.config.logging import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Room membership for live connections.

    Thread-safe: every mutation and every snapshot runs under one
    threading.Lock, so a join racing a disconnect never leaves a dangling
    member behind.

    Rooms with no members are removed. Unknown rooms and connections are
    treated as empty; no method raises for them.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[str]] = {}
        self._by_connection: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def join(self, key: str, connection_id: str) -> bool:
        """
        Add a connection to a room. Idempotent.

        Args:
            key: Room key.
            connection_id: Connection identifier.

        Returns:
            True if the connection was added, False if it was already a
            member or the input was empty.
        """
        if not key or not connection_id:
            return False
        with self._lock:
            members = self._rooms.setdefault(key, set())
            if connection_id in members:
                return False
            members.add(connection_id)
            self._by_connection.setdefault(connection_id, set()).add(key)
            return True

    def leave(self, key: str, connection_id: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if the connection was a member.
        """
        if not key or not connection_id:
            return False
        with self._lock:
            return self._remove_locked(key, connection_id)

    def on_disconnect(self, connection_id: str) -> set[str]:
        """
        Remove a connection from every room it joined.

        Returns:
            The room keys the connection left.
        """
        if not connection_id:
            return set()
        with self._lock:
            keys = self._by_connection.pop(connection_id, set())
            for key in keys:
                members = self._rooms.get(key)
                if members is None:
                    continue
                members.discard(connection_id)
                if not members:
                    del self._rooms[key]
        if keys:
            logger.debug(
                "Connection removed from rooms",
                connection_id=connection_id,
                rooms=sorted(keys),
            )
        return keys

    def size_of(self, key: str) -> int:
        """Number of members in a room (0 if the room does not exist)."""
        with self._lock:
            return len(self._rooms.get(key, ()))

    def members(self, key: str) -> frozenset[str]:
        """Snapshot of a room's members, safe to iterate while others join or leave."""
        with self._lock:
            return frozenset(self._rooms.get(key, ()))

    def rooms_of(self, connection_id: str) -> frozenset[str]:
        """Snapshot of the rooms a connection belongs to."""
        with self._lock:
            return frozenset(self._by_connection.get(connection_id, ()))

    @property
    def room_count(self) -> int:
        """Number of non-empty rooms."""
        with self._lock:
            return len(self._rooms)

    @property
    def connection_count(self) -> int:
        """Number of connections that belong to at least one room."""
        with self._lock:
            return len(self._by_connection)

    def room_sizes(self, prefix: str = "") -> dict[str, int]:
        """
        Member count per room.

        Args:
            prefix: Only rooms whose key starts with this prefix are returned.
        """
        with self._lock:
            return {
                key: len(members)
                for key, members in self._rooms.items()
                if key.startswith(prefix)
            }

    def get_stats(self) -> dict[str, int]:
        """Get registry statistics."""
        with self._lock:
            return {
                "rooms": len(self._rooms),
                "connections_in_rooms": len(self._by_connection),
                "memberships": sum(len(m) for m in self._rooms.values()),
            }

    def _remove_locked(self, key: str, connection_id: str) -> bool:
        members = self._rooms.get(key)
        if members is None or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._rooms[key]
        joined = self._by_connection.get(connection_id)
        if joined is not None:
            joined.discard(key)
            if not joined:
                del self._by_connection[connection_id]
        return True

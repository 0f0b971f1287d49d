"""
Room lock manager.

One asyncio.Lock per room key. Emission to a room holds its lock so that
events sent to the same room are delivered in the order they were emitted.
"""

from __future__ import annotations

import asyncio

from shared.config.logging import get_logger
from ws_gateway.components.core.constants import WSConstants

logger = get_logger(__name__)


class RoomLockManager:
    """
    Manages asyncio locks keyed by room.

    Locks are created on demand. The cache is bounded: once it reaches the
    cleanup threshold, unheld locks are evicted (they are recreated on demand).
    """

    def __init__(self, cleanup_threshold: int = WSConstants.ROOM_LOCK_CLEANUP_THRESHOLD):
        """
        Initialize the lock manager.

        Args:
            cleanup_threshold: Number of cached locks that triggers eviction.
        """
        self._cleanup_threshold = cleanup_threshold
        self._room_locks: dict[str, asyncio.Lock] = {}
        # Meta-lock for the lock dictionary itself
        self._meta_lock = asyncio.Lock()
        self._locks_cleaned = 0

    @property
    def room_lock_count(self) -> int:
        """Number of room locks currently cached."""
        return len(self._room_locks)

    @property
    def locks_cleaned_total(self) -> int:
        """Total number of locks cleaned since startup."""
        return self._locks_cleaned

    async def get_room_lock(self, room: str) -> asyncio.Lock:
        """
        Get or create the lock for a room.

        Args:
            room: Room key.

        Returns:
            asyncio.Lock for the room.
        """
        async with self._meta_lock:
            lock = self._room_locks.get(room)
            if lock is not None:
                return lock
            if len(self._room_locks) >= self._cleanup_threshold:
                self._cleanup_unheld_locks()
            lock = asyncio.Lock()
            self._room_locks[room] = lock
            return lock

    async def cleanup_locks(self, active_rooms: set[str] | frozenset[str] = frozenset()) -> int:
        """
        Drop unheld locks of rooms that no longer exist.

        Args:
            active_rooms: Rooms that still have members; their locks are kept.

        Returns:
            Number of locks removed.
        """
        async with self._meta_lock:
            stale = [
                room for room, lock in self._room_locks.items()
                if room not in active_rooms and not lock.locked()
            ]
            for room in stale:
                del self._room_locks[room]
            self._locks_cleaned += len(stale)
        if stale:
            logger.debug("Cleaned up room locks", count=len(stale))
        return len(stale)

    def _cleanup_unheld_locks(self) -> int:
        """
        Evict unheld locks down to the hysteresis target. Caller holds the meta-lock.
        """
        target_count = int(self._cleanup_threshold * WSConstants.LOCK_CLEANUP_HYSTERESIS_RATIO)
        to_remove = len(self._room_locks) - target_count
        if to_remove <= 0:
            return 0

        # Oldest first by dict insertion order
        keys_to_remove = [
            room for room, lock in list(self._room_locks.items()) if not lock.locked()
        ][:to_remove]
        for room in keys_to_remove:
            del self._room_locks[room]
        self._locks_cleaned += len(keys_to_remove)
        return len(keys_to_remove)

    def get_stats(self) -> dict[str, int]:
        """Get lock manager statistics."""
        return {
            "room_locks": len(self._room_locks),
            "locks_cleaned_total": self._locks_cleaned,
        }

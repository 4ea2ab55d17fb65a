"""Room → member connections index."""
from __future__ import annotations

from typing import Dict, FrozenSet, Set


class RoomIndex:
    """Track which connections are in each room.

    Rooms exist only while they have members: removing the last connection
    drops the room key.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = {}

    def members_of(self, room_id: str) -> FrozenSet[str]:
        """Return a point-in-time copy of the room's members (empty if unknown)."""

        return frozenset(self._rooms.get(room_id, ()))

    def add(self, room_id: str, connection_id: str) -> None:
        self._rooms.setdefault(room_id, set()).add(connection_id)

    def remove(self, room_id: str, connection_id: str) -> bool:
        """Remove a member, pruning the room when it empties. Returns True if it was present."""

        members = self._rooms.get(room_id)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._rooms[room_id]
        return True

    def rooms(self) -> FrozenSet[str]:
        return frozenset(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

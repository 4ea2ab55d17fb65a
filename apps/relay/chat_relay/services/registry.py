"""Connection → membership registry."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional


@dataclass(frozen=True, slots=True)
class Membership:
    """The room a connection currently belongs to, and as which user."""

    user_id: str
    room_id: str


class ConnectionRegistry:
    """Own the mapping from connection id to its single current membership.

    Entries are immutable and replaced whole, so a reader never observes a user
    paired with a stale room. The registry does no locking of its own; the
    session lifecycle is its only writer.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Membership] = {}

    def set(self, connection_id: str, user_id: str, room_id: str) -> Membership:
        entry = Membership(user_id=user_id, room_id=room_id)
        self._entries[connection_id] = entry
        return entry

    def get(self, connection_id: str) -> Optional[Membership]:
        return self._entries.get(connection_id)

    def remove(self, connection_id: str) -> Optional[Membership]:
        return self._entries.pop(connection_id, None)

    def snapshot(self) -> Mapping[str, Membership]:
        """Return a read-only copy of every entry."""

        return MappingProxyType(dict(self._entries))

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

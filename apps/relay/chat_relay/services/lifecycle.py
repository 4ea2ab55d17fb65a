"""Join, switch and disconnect transitions for chat connections."""
from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ..schemas.chat import Notice, OutboundEvent, UserList
from .broadcast import BroadcastRouter
from .registry import ConnectionRegistry, Membership
from .rooms import RoomIndex
from .transport import Transport
from .validation import ValidationGate

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    UNJOINED = "unjoined"
    JOINING = "joining"
    JOINED = "joined"
    GONE = "gone"


class JoinOutcome(str, enum.Enum):
    JOINED = "joined"
    SWITCHED = "switched"
    REFRESHED = "refreshed"
    REJECTED = "rejected"
    IGNORED = "ignored"


class SessionLifecycle:
    """Coordinate registry and room index updates with their notifications.

    All membership mutations happen under one lock, and the notifications that
    describe a mutation are queued before the lock is released, so every room
    sees member lists in the order the changes happened. Queuing never waits
    on a client socket; validation runs outside the lock.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomIndex,
        gate: ValidationGate,
        router: BroadcastRouter,
        transport: Transport,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._gate = gate
        self._router = router
        self._transport = transport
        self._states: Dict[str, ConnectionState] = {}
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def rooms(self) -> RoomIndex:
        return self._rooms

    def connect(self, connection_id: str) -> None:
        self._states.setdefault(connection_id, ConnectionState.UNJOINED)

    def state_of(self, connection_id: str) -> ConnectionState:
        """Current state; connections never seen or already departed report GONE."""

        return self._states.get(connection_id, ConnectionState.GONE)

    async def join(self, connection_id: str, user_id: str, room_id: str) -> JoinOutcome:
        """Validate and apply a request to enter ``room_id``."""

        prior = self._states.get(connection_id)
        if prior is None:
            logger.debug("Ignoring join from unknown connection %s", connection_id)
            return JoinOutcome.IGNORED

        self._states[connection_id] = ConnectionState.JOINING
        decision = await self._gate.validate(user_id, room_id)

        if not decision.accepted:
            if self._states.get(connection_id) is ConnectionState.JOINING:
                self._states[connection_id] = prior
            self._router.send_error(connection_id, decision.reason or "")
            return JoinOutcome.REJECTED

        async with self._lock:
            if self._states.get(connection_id) is not ConnectionState.JOINING:
                logger.debug("Connection %s left while joining %s", connection_id, room_id)
                return JoinOutcome.IGNORED

            previous = self._registry.get(connection_id)
            self._states[connection_id] = ConnectionState.JOINED

            if previous is not None and previous.room_id == room_id:
                return self._refresh(connection_id, previous, user_id)

            if previous is not None:
                self._rooms.remove(previous.room_id, connection_id)
                self._transport.unsubscribe(connection_id, previous.room_id)
            self._registry.set(connection_id, user_id, room_id)
            self._rooms.add(room_id, connection_id)
            self._transport.subscribe(connection_id, room_id)
            logger.info("User %s joined chat %s", user_id, room_id)

            if previous is not None:
                self._announce(previous.room_id, previous.user_id, f"left chat {previous.room_id}.")
            self._announce(room_id, user_id, f"joined chat {room_id}.")

        return JoinOutcome.SWITCHED if previous is not None else JoinOutcome.JOINED

    async def disconnect(self, connection_id: str) -> Optional[Membership]:
        """Drop a connection and tell its room. Safe to call for any connection."""

        async with self._lock:
            self._states.pop(connection_id, None)
            entry = self._registry.remove(connection_id)
            if entry is None:
                return None

            self._rooms.remove(entry.room_id, connection_id)
            self._transport.unsubscribe(connection_id, entry.room_id)
            logger.info("User %s left chat %s", entry.user_id, entry.room_id)
            self._announce(entry.room_id, entry.user_id, "left the chat.")
        return entry

    def users_in(self, room_id: str) -> List[str]:
        """User ids of the room's members, sorted for stable output."""

        users = []
        for connection_id in self._rooms.members_of(room_id):
            entry = self._registry.get(connection_id)
            if entry is not None:
                users.append(entry.user_id)
        return sorted(users)

    def _refresh(self, connection_id: str, previous: Membership, user_id: str) -> JoinOutcome:
        self._registry.set(connection_id, user_id, previous.room_id)
        user_list = UserList(users=self.users_in(previous.room_id)).model_dump()
        if previous.user_id == user_id:
            self._router.send_to(connection_id, OutboundEvent.USER_LIST, user_list)
        else:
            self._router.broadcast_to_room(previous.room_id, OutboundEvent.USER_LIST, user_list)
        return JoinOutcome.REFRESHED

    def _announce(self, room_id: str, user_id: str, text: str) -> None:
        notice = Notice(user_id=user_id, text=text, time=_clock())
        self._router.broadcast_to_room(room_id, OutboundEvent.JOIN_LEFT, notice.model_dump())
        user_list = UserList(users=self.users_in(room_id))
        self._router.broadcast_to_room(room_id, OutboundEvent.USER_LIST, user_list.model_dump())


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")

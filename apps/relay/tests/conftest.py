"""Shared fakes for relay tests."""
from __future__ import annotations

import asyncio

import pytest

from chat_relay.schemas.chat import ChatMessage, ValidatorReply
from chat_relay.services.broadcast import BroadcastRouter
from chat_relay.services.lifecycle import SessionLifecycle
from chat_relay.services.persistence import PersistenceError
from chat_relay.services.registry import ConnectionRegistry
from chat_relay.services.relay import ChatRelay
from chat_relay.services.rooms import RoomIndex
from chat_relay.services.transport import ClientConnection, WebSocketTransport
from chat_relay.services.validation import ValidationGate, ValidatorUnavailableError


class DummyConnection:
    """Records every frame the transport sends to it."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.frames: list[dict] = []

    async def send(self, frame: dict) -> None:
        self.frames.append(frame)

    def events(self, name: str) -> list[dict]:
        return [frame["data"] for frame in self.frames if frame["event"] == name]

    def names(self) -> list[str]:
        return [frame["event"] for frame in self.frames]

    def clear(self) -> None:
        self.frames.clear()


class StubValidator:
    """Accepts everyone unless told otherwise; can be paused per call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.rejected: dict[tuple[str, str], str | None] = {}
        self.unavailable = False
        self.gate: asyncio.Event | None = None

    async def check(self, user_id: str, chat_id: str) -> ValidatorReply:
        self.calls.append((user_id, chat_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.unavailable:
            raise ValidatorUnavailableError("validator down")
        if (user_id, chat_id) in self.rejected:
            return ValidatorReply(success=False, message=self.rejected[(user_id, chat_id)])
        return ValidatorReply(success=True)


class StubPersister:
    def __init__(self) -> None:
        self.saved: list[ChatMessage] = []
        self.fail = False

    async def save(self, message: ChatMessage) -> None:
        if self.fail:
            raise PersistenceError("store returned HTTP 500")
        self.saved.append(message)


def make_relay(validator: StubValidator, persister: StubPersister | None = None) -> ChatRelay:
    transport = WebSocketTransport()
    registry = ConnectionRegistry()
    rooms = RoomIndex()
    router = BroadcastRouter(registry, rooms, transport, persister)
    lifecycle = SessionLifecycle(registry, rooms, ValidationGate(validator), router, transport)
    return ChatRelay(transport, lifecycle, router)


def open_connection(relay: ChatRelay, connection_id: str) -> DummyConnection:
    conn = DummyConnection(connection_id)
    relay.transport.register(ClientConnection(connection_id, conn.send))
    relay.connect(connection_id)
    return conn


async def settle(relay: ChatRelay) -> None:
    """Let every queued frame reach its recording connection."""

    await relay.transport.drain()


def assert_consistent(relay: ChatRelay) -> None:
    """Registry and room index must describe the same memberships."""

    registry = relay.lifecycle.registry
    rooms = relay.lifecycle.rooms
    for connection_id, entry in registry.snapshot().items():
        assert connection_id in rooms.members_of(entry.room_id)
    for room_id in rooms.rooms():
        members = rooms.members_of(room_id)
        assert members, f"empty room {room_id} left in index"
        for connection_id in members:
            entry = registry.get(connection_id)
            assert entry is not None and entry.room_id == room_id


@pytest.fixture
def validator() -> StubValidator:
    return StubValidator()


@pytest.fixture
def persister() -> StubPersister:
    return StubPersister()


@pytest.fixture
def relay(validator: StubValidator) -> ChatRelay:
    return make_relay(validator)

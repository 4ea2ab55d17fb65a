"""Delivery of outbound events to connected clients."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, Protocol, Set

SendCallable = Callable[[dict], Awaitable[None]]

DEFAULT_OUTBOX_SIZE = 256

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the relay core needs from the delivery layer.

    ``send`` and ``emit`` only queue frames and never wait on a client.
    """

    def send(self, connection_id: str, event: str, payload: dict) -> None: ...

    def emit(self, connection_ids: Iterable[str], event: str, payload: dict) -> None: ...

    def subscribe(self, connection_id: str, room_id: str) -> None: ...

    def unsubscribe(self, connection_id: str, room_id: str) -> None: ...


@dataclass(slots=True)
class ClientConnection:
    """Connection wrapper for a connected chat client."""

    connection_id: str
    send: SendCallable


@dataclass(slots=True)
class _Outbox:
    connection: ClientConnection
    queue: asyncio.Queue[dict]
    writer: asyncio.Task[None] | None = field(default=None)


class WebSocketTransport:
    """Queue JSON frames per connection and write them from one task per socket.

    A client that stops reading only fills its own bounded queue; frames past
    the bound are dropped for that client. Room subscriptions here are
    delivery bookkeeping only; the room index owns the logical membership.
    """

    def __init__(self, outbox_size: int = DEFAULT_OUTBOX_SIZE) -> None:
        self._outbox_size = outbox_size
        self._outboxes: Dict[str, _Outbox] = {}
        self._subscriptions: Dict[str, Set[str]] = {}

    def register(self, connection: ClientConnection) -> None:
        """Start delivering to a connection; must be called from a running event loop."""

        self.unregister(connection.connection_id)
        outbox = _Outbox(connection=connection, queue=asyncio.Queue(maxsize=self._outbox_size))
        outbox.writer = asyncio.create_task(self._write_loop(outbox))
        self._outboxes[connection.connection_id] = outbox

    def unregister(self, connection_id: str) -> None:
        self._subscriptions.pop(connection_id, None)
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None and outbox.writer is not None:
            outbox.writer.cancel()

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def __len__(self) -> int:
        return len(self._outboxes)

    def subscribe(self, connection_id: str, room_id: str) -> None:
        if connection_id not in self._outboxes:
            return
        self._subscriptions.setdefault(connection_id, set()).add(room_id)

    def unsubscribe(self, connection_id: str, room_id: str) -> None:
        rooms = self._subscriptions.get(connection_id)
        if not rooms:
            return
        rooms.discard(room_id)
        if not rooms:
            self._subscriptions.pop(connection_id, None)

    def subscriptions(self, connection_id: str) -> frozenset[str]:
        return frozenset(self._subscriptions.get(connection_id, ()))

    def send(self, connection_id: str, event: str, payload: dict) -> None:
        """Queue one frame for a single connection, ignoring departed ones."""

        self.emit((connection_id,), event, payload)

    def emit(self, connection_ids: Iterable[str], event: str, payload: dict) -> None:
        """Queue the same frame for many connections."""

        frame = _frame(event, payload)
        for connection_id in connection_ids:
            outbox = self._outboxes.get(connection_id)
            if outbox is None:
                continue
            try:
                outbox.queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning("Outbox full for connection %s; dropping %s", connection_id, event)

    async def drain(self) -> None:
        """Wait until every queued frame has been written or dropped."""

        await asyncio.gather(*(outbox.queue.join() for outbox in list(self._outboxes.values())))

    async def _write_loop(self, outbox: _Outbox) -> None:
        connection = outbox.connection
        while True:
            frame = await outbox.queue.get()
            try:
                await connection.send(frame)
            except Exception as exc:  # noqa: BLE001 - a dead socket must not stop its writer
                logger.warning("Dropping %s for connection %s: %s", frame["event"], connection.connection_id, exc)
            finally:
                outbox.queue.task_done()


def _frame(event: str, payload: dict) -> dict:
    return {"event": event, "data": payload}

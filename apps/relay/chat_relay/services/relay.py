"""Single dispatch point for inbound chat events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..core.config import Settings
from ..schemas.chat import Envelope, InboundEvent, OutboundEvent, RoomPayload
from .broadcast import BroadcastRouter, RelayOutcome
from .lifecycle import JoinOutcome, SessionLifecycle
from .persistence import HttpMessagePersister, MessagePersister
from .registry import ConnectionRegistry
from .rooms import RoomIndex
from .transport import WebSocketTransport
from .validation import AllowAllValidator, HttpMembershipValidator, MembershipValidator, ValidationGate

logger = logging.getLogger(__name__)


class ChatRelay:
    """Route each inbound event to the lifecycle or the broadcast router.

    Events from one connection are handled one at a time in arrival order; a
    connection waiting on the validator or persister holds up only itself.
    """

    def __init__(self, transport: WebSocketTransport, lifecycle: SessionLifecycle, router: BroadcastRouter) -> None:
        self.transport = transport
        self.lifecycle = lifecycle
        self.router = router
        self._connection_locks: Dict[str, asyncio.Lock] = {}

    def connect(self, connection_id: str) -> None:
        self._connection_locks.setdefault(connection_id, asyncio.Lock())
        self.lifecycle.connect(connection_id)

    async def dispatch(
        self,
        connection_id: str,
        event: InboundEvent,
        payload: Optional[RoomPayload] = None,
    ) -> JoinOutcome | RelayOutcome | None:
        """Handle one event for a connection, after any earlier ones it sent."""

        lock = self._connection_locks.get(connection_id)
        if lock is None:
            logger.debug("Ignoring %s from unknown connection %s", event.value, connection_id)
            return None

        async with lock:
            if event is InboundEvent.DISCONNECT:
                self._connection_locks.pop(connection_id, None)
                await self.lifecycle.disconnect(connection_id)
                return None

            if payload is None:
                raise ValueError(f"{event.value} requires a payload")

            if event is InboundEvent.ENTER_ROOM:
                return await self.lifecycle.join(connection_id, payload.user_id, payload.chat_id)
            if event is InboundEvent.MESSAGE:
                return await self.router.relay_message(connection_id, payload)
            if event is InboundEvent.TYPING:
                return await self.router.relay_signal(connection_id, OutboundEvent.TYPING)
            if event is InboundEvent.STOP_TYPING:
                return await self.router.relay_signal(connection_id, OutboundEvent.STOP_TYPING)

        raise ValueError(f"Unhandled event {event!r}")

    async def handle_frame(self, connection_id: str, frame: Any) -> JoinOutcome | RelayOutcome | None:
        """Parse a raw ``{"event", "data"}`` frame from a client and dispatch it."""

        try:
            envelope = Envelope.model_validate(frame)
            event = InboundEvent(envelope.event)
        except (ValidationError, ValueError):
            logger.debug("Ignoring malformed frame from %s", connection_id)
            return None

        if event is InboundEvent.DISCONNECT:
            # Disconnects come from the transport, never from the client.
            return None

        try:
            payload = RoomPayload.model_validate(envelope.data)
        except ValidationError:
            self.router.send_error(connection_id, f"Malformed {event.value} payload.")
            return None

        return await self.dispatch(connection_id, event, payload)


def build_relay(
    config: Settings,
    client: httpx.AsyncClient,
    transport: Optional[WebSocketTransport] = None,
) -> ChatRelay:
    """Wire the relay core from settings."""

    validator: MembershipValidator
    if config.membership_validator_url:
        validator = HttpMembershipValidator(client, config.membership_validator_url)
    else:
        logger.warning("No membership validator configured; every join will be admitted")
        validator = AllowAllValidator()

    persister: Optional[MessagePersister] = None
    if config.message_persister_url:
        persister = HttpMessagePersister(client, config.message_persister_url)

    transport = transport or WebSocketTransport()
    registry = ConnectionRegistry()
    rooms = RoomIndex()
    router = BroadcastRouter(registry, rooms, transport, persister)
    lifecycle = SessionLifecycle(registry, rooms, ValidationGate(validator), router, transport)
    return ChatRelay(transport, lifecycle, router)

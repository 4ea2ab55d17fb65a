"""Audience resolution and fan-out for room events."""
from __future__ import annotations

import enum
import logging
from typing import Optional

from ..schemas.chat import ChatMessage, ErrorNotice, OutboundEvent, RoomPayload, Signal
from .persistence import MessagePersister, PersistenceError
from .registry import ConnectionRegistry
from .rooms import RoomIndex
from .transport import Transport

SEND_FAILED_TEXT = "Failed to send the message."

logger = logging.getLogger(__name__)


class RelayOutcome(str, enum.Enum):
    DELIVERED = "delivered"
    ROOM_MISMATCH = "room_mismatch"
    PERSISTENCE_FAILED = "persistence_failed"


class BroadcastRouter:
    """Resolve who should receive an event and hand it to the transport."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomIndex,
        transport: Transport,
        persister: Optional[MessagePersister] = None,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._transport = transport
        self._persister = persister

    def broadcast_to_room(
        self,
        room_id: str,
        event: OutboundEvent,
        payload: dict,
        exclude: Optional[str] = None,
    ) -> int:
        """Send an event to every current member of a room; returns the audience size."""

        audience = [member for member in self._rooms.members_of(room_id) if member != exclude]
        if audience:
            self._transport.emit(audience, event.value, payload)
        return len(audience)

    def send_to(self, connection_id: str, event: OutboundEvent, payload: dict) -> None:
        self._transport.send(connection_id, event.value, payload)

    def send_error(self, connection_id: str, text: str) -> None:
        self.send_to(connection_id, OutboundEvent.ERROR, ErrorNotice(text=text).model_dump())

    async def relay_message(self, connection_id: str, payload: RoomPayload) -> RelayOutcome:
        """Relay a chat message to the sender's room, sender included.

        The claimed ``chat_id`` must match the sender's registered room; anything
        else is dropped without telling the sender.
        """

        membership = self._registry.get(connection_id)
        if membership is None or membership.room_id != payload.chat_id:
            logger.debug("Dropping message from %s for chat %s: not a member", connection_id, payload.chat_id)
            return RelayOutcome.ROOM_MISMATCH

        message = ChatMessage(
            user_id=payload.user_id,
            chat_id=payload.chat_id,
            text=payload.text,
            file_url=payload.file_url,
            file_type=payload.file_type,
        )

        if message.file_url:
            logger.info("File message from user %s in chat %s: %s", message.user_id, message.chat_id, message.file_url)
        else:
            logger.info("Text message from user %s in chat %s", message.user_id, message.chat_id)

        if self._persister is not None:
            try:
                await self._persister.save(message)
            except PersistenceError as exc:
                logger.warning("Message from %s in chat %s not saved: %s", message.user_id, message.chat_id, exc)
                self.send_error(connection_id, SEND_FAILED_TEXT)
                return RelayOutcome.PERSISTENCE_FAILED
            except Exception:  # noqa: BLE001 - scoped to this one message
                logger.exception("Unexpected persister error for chat %s", message.chat_id)
                self.send_error(connection_id, SEND_FAILED_TEXT)
                return RelayOutcome.PERSISTENCE_FAILED

        self.broadcast_to_room(message.chat_id, OutboundEvent.MESSAGE, message.model_dump())
        return RelayOutcome.DELIVERED

    async def relay_signal(self, connection_id: str, event: OutboundEvent) -> RelayOutcome:
        """Forward a typing indicator to everyone else in the sender's room."""

        membership = self._registry.get(connection_id)
        if membership is None:
            return RelayOutcome.ROOM_MISMATCH

        signal = Signal(user_id=membership.user_id)
        self.broadcast_to_room(membership.room_id, event, signal.model_dump(), exclude=connection_id)
        return RelayOutcome.DELIVERED

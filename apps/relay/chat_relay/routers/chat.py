"""WebSocket endpoint for chat clients."""
from __future__ import annotations

import asyncio
import json
import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..schemas.chat import InboundEvent, RoomPayload
from ..services.relay import ChatRelay
from ..services.transport import ClientConnection

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def chat_endpoint(websocket: WebSocket) -> None:
    """Relay ``{"event", "data"}`` frames between a client and its room."""

    relay: ChatRelay = websocket.app.state.relay
    connection_id = str(uuid4())
    await websocket.accept()

    relay.transport.register(ClientConnection(connection_id=connection_id, send=websocket.send_json))
    relay.connect(connection_id)
    logger.info("Connection %s opened", connection_id)

    try:
        user_id = websocket.query_params.get("user_id")
        chat_id = websocket.query_params.get("chat_id")
        if user_id and chat_id:
            await relay.dispatch(
                connection_id,
                InboundEvent.ENTER_ROOM,
                RoomPayload(user_id=user_id, chat_id=chat_id),
            )

        while True:
            frame = await _receive_frame(websocket, connection_id)
            if not isinstance(frame, dict):
                continue
            await relay.handle_frame(connection_id, frame)
    except WebSocketDisconnect:
        pass
    finally:
        try:
            # The room must hear about the departure even if this task is cancelled.
            await asyncio.shield(relay.dispatch(connection_id, InboundEvent.DISCONNECT))
        finally:
            relay.transport.unregister(connection_id)
            logger.info("Connection %s closed", connection_id)


async def _receive_frame(websocket: WebSocket, connection_id: str) -> object:
    """Next JSON text frame from the client; binary or undecodable frames yield None."""

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))

    text = message.get("text")
    if text is None:
        logger.debug("Ignoring binary frame from %s", connection_id)
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON frame from %s", connection_id)
        return None

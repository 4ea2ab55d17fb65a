"""Optional hand-off of chat messages to an external store."""
from __future__ import annotations

from typing import Protocol

import httpx

from ..schemas.chat import ChatMessage


class PersistenceError(RuntimeError):
    """Raised when a message could not be saved."""


class MessagePersister(Protocol):
    async def save(self, message: ChatMessage) -> None: ...


class HttpMessagePersister:
    """POST each message to an external HTTP endpoint before it is relayed."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def save(self, message: ChatMessage) -> None:
        try:
            response = await self._client.post(self._url, json=message.model_dump())
        except httpx.HTTPError as exc:
            raise PersistenceError(f"persist request failed: {exc}") from exc

        if not response.is_success:
            raise PersistenceError(f"persister returned HTTP {response.status_code}")

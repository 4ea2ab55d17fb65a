"""Membership validation before a connection is admitted to a room."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from pydantic import ValidationError

from ..schemas.chat import ValidatorReply

GENERIC_REJECTION = "Unexpected error occurred. Try again later."
DEFAULT_REJECTION = "You are not a member of this chat."

logger = logging.getLogger(__name__)


class ValidatorUnavailableError(RuntimeError):
    """Raised when the membership validator cannot give a usable answer."""


class MembershipValidator(Protocol):
    async def check(self, user_id: str, chat_id: str) -> ValidatorReply: ...


class AllowAllValidator:
    """Admit every join; used when no validator endpoint is configured."""

    async def check(self, user_id: str, chat_id: str) -> ValidatorReply:
        return ValidatorReply(success=True)


class HttpMembershipValidator:
    """Ask an external HTTP service whether a user belongs to a chat."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def check(self, user_id: str, chat_id: str) -> ValidatorReply:
        try:
            response = await self._client.post(self._url, json={"user_id": user_id, "chat_id": chat_id})
        except httpx.HTTPError as exc:
            raise ValidatorUnavailableError(f"validator request failed: {exc}") from exc

        if not response.is_success:
            raise ValidatorUnavailableError(f"validator returned HTTP {response.status_code}")

        try:
            return ValidatorReply.model_validate_json(response.content)
        except ValidationError as exc:
            raise ValidatorUnavailableError("validator returned a malformed body") from exc


@dataclass(frozen=True, slots=True)
class GateDecision:
    accepted: bool
    reason: str | None = None


class ValidationGate:
    """Turn validator answers and failures into an accept/reject decision."""

    def __init__(self, validator: MembershipValidator) -> None:
        self._validator = validator

    async def validate(self, user_id: str, room_id: str) -> GateDecision:
        """Return the decision for a join; never raises for validator faults."""

        try:
            reply = await self._validator.check(user_id, room_id)
        except ValidatorUnavailableError as exc:
            logger.warning("Membership check for %s in %s failed: %s", user_id, room_id, exc)
            return GateDecision(accepted=False, reason=GENERIC_REJECTION)
        except Exception:  # noqa: BLE001 - a broken validator must not crash the session
            logger.exception("Unexpected membership validator error for %s in %s", user_id, room_id)
            return GateDecision(accepted=False, reason=GENERIC_REJECTION)

        if reply.success:
            return GateDecision(accepted=True)

        logger.info("User %s rejected from chat %s: %s", user_id, room_id, reply.message)
        return GateDecision(accepted=False, reason=reply.message or DEFAULT_REJECTION)

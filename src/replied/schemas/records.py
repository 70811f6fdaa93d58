"""Typed views over raw record-store rows.

The record store hands back plain mappings. Everything the core reads is
decoded into one of these models first, so a malformed row fails loudly with
:class:`~replied.core.errors.DecodeError` instead of surfacing later as an
attribute or type error.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from replied.core.errors import DecodeError
from replied.models.message import MESSAGE_STATUSES

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecipientPolicy(BaseModel):
    """Point-in-time snapshot of the inbox rules of a recipient."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: str
    display_name: str | None = None
    email: str | None = None
    is_paused: bool = False
    blocked_phrases: tuple[str, ...] = ()

    @field_validator("blocked_phrases", mode="before")
    @classmethod
    def _coerce_phrases(cls, value: Any) -> Any:
        # Stores return NULL for profiles that never set a list.
        return () if value is None else value

    @property
    def greeting_name(self) -> str:
        """Return the name used when addressing the recipient."""
        return self.display_name or self.username


class MessageRecord(BaseModel):
    """Stored message as read back from the record store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    receiver_id: str
    sender_id: str | None = None
    content: str
    status: str
    thread_id: str | None = None
    created_at: datetime

    @field_validator("status")
    @classmethod
    def _known_status(cls, value: str) -> str:
        if value not in MESSAGE_STATUSES:
            raise ValueError(f"unknown message status {value!r}")
        return value


class ReplyRecord(BaseModel):
    """Stored reply as read back from the record store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    message_id: str
    sender_id: str
    content: str
    created_at: datetime


class ThreadRoot(BaseModel):
    """Earliest message of a thread; only its sender matters."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    sender_id: str | None = None


class Principal(BaseModel):
    """Identity returned by the identity provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    email: str | None = None


def decode_record(model: type[RecordT], raw: Mapping[str, Any]) -> RecordT:
    """Validate ``raw`` against ``model``.

    Raises:
        DecodeError: If the row is missing fields or has the wrong types.
    """
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        raise DecodeError(f"{model.__name__} could not be decoded: {exc.error_count()} error(s)") from exc

# src/replied/schemas/messages.py
"""Message-related Pydantic schemas for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

MAX_CONTENT_LENGTH = 2000


class MessageSubmit(BaseModel):
    """Schema for submitting a message to a recipient's inbox."""

    receiver_id: str = Field(..., min_length=1, description="Profile id of the recipient")
    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)
    thread_id: str | None = Field(None, description="Thread to continue, if any")

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value

    @field_validator("thread_id")
    @classmethod
    def _empty_thread_is_none(cls, value: str | None) -> str | None:
        return value or None


class ReplyCreate(BaseModel):
    """Schema for publishing a reply."""

    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)


class SubmissionAccepted(BaseModel):
    """Body returned when a submission is accepted."""

    status: str = "sent"
    message_id: str


class SubmissionRejected(BaseModel):
    """Body returned for every rejected submission."""

    reason: str
    detail: str


class ReplyView(BaseModel):
    """Reply as shown to its author."""

    id: str
    content: str | None
    content_available: bool
    created_at: datetime


class MessageView(BaseModel):
    """Message as shown in the recipient's inbox or history."""

    id: str
    content: str | None
    content_available: bool
    status: str
    thread_id: str | None = None
    is_anonymous: bool
    created_at: datetime
    reply: ReplyView | None = None


class StatusResponse(BaseModel):
    """Generic status acknowledgement."""

    status: str


class PublicExchangeView(BaseModel):
    """Answered message as shown on the recipient's public profile.

    Sender identity is never exposed here.
    """

    id: str
    content: str | None
    content_available: bool
    thread_id: str | None = None
    created_at: datetime
    reply: ReplyView | None = None

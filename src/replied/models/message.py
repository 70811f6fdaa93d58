# src/replied/models/message.py
"""Models describing inbox messages and their replies."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from replied.db.session import Base
from replied.db.time import utcnow

MESSAGE_STATUS_PENDING = "pending"
MESSAGE_STATUS_REPLIED = "replied"
MESSAGE_STATUS_ARCHIVED = "archived"
MESSAGE_STATUS_REPORTED = "reported"

MESSAGE_STATUSES = (
    MESSAGE_STATUS_PENDING,
    MESSAGE_STATUS_REPLIED,
    MESSAGE_STATUS_ARCHIVED,
    MESSAGE_STATUS_REPORTED,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class Message(Base):
    """Message delivered to a recipient's inbox.

    ``content`` is a sealed token at rest. ``sender_id`` is empty for
    anonymous senders.
    """

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_thread_created", "thread_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    receiver_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=MESSAGE_STATUS_PENDING,
    )
    thread_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)


class Reply(Base):
    """The recipient's published answer to a message."""

    __tablename__ = "replies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # One authoritative reply per message.
    message_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    sender_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

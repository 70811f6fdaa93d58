# src/replied/services/lifecycle.py
"""Inbox and public profile reads, and the reply/report/archive transitions."""

from __future__ import annotations

import logging
from typing import Final

from replied.core.errors import DecodeError, InvalidTransition, MessageNotFound, ProfileNotFound
from replied.db.time import as_utc
from replied.models.message import (
    MESSAGE_STATUS_ARCHIVED,
    MESSAGE_STATUS_PENDING,
    MESSAGE_STATUS_REPLIED,
    MESSAGE_STATUS_REPORTED,
)
from replied.repositories.record_store import RecordStore
from replied.schemas.messages import MessageView, PublicExchangeView, ReplyView
from replied.schemas.records import MessageRecord, RecipientPolicy, ReplyRecord, decode_record
from replied.services.crypto import CryptoVault

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE: Final[int] = 100

# Statuses only move forward. A reported message can still be answered.
ALLOWED_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    MESSAGE_STATUS_PENDING: frozenset(
        {MESSAGE_STATUS_REPLIED, MESSAGE_STATUS_ARCHIVED, MESSAGE_STATUS_REPORTED}
    ),
    MESSAGE_STATUS_REPORTED: frozenset({MESSAGE_STATUS_REPLIED}),
}


def can_transition(current: str, target: str) -> bool:
    """Return True if a message may move from ``current`` to ``target``."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class MessageLifecycle:
    """Recipient-side operations on stored messages."""

    def __init__(self, store: RecordStore, vault: CryptoVault) -> None:
        self._store = store
        self._vault = vault

    def _decode_messages(self, rows: list[dict]) -> list[MessageRecord]:
        records = []
        for row in rows:
            try:
                records.append(decode_record(MessageRecord, row))
            except DecodeError as exc:
                logger.warning("Skipping malformed message %s: %s", row.get("id"), exc)
        return records

    def _reply_view(self, reply: ReplyRecord) -> ReplyView:
        content = self._vault.open_or_none(reply.content, field="reply content")
        return ReplyView(
            id=reply.id,
            content=content,
            content_available=content is not None,
            created_at=as_utc(reply.created_at),
        )

    def _message_view(self, message: MessageRecord, reply: ReplyRecord | None = None) -> MessageView:
        content = self._vault.open_or_none(message.content, field="message content")
        return MessageView(
            id=message.id,
            content=content,
            content_available=content is not None,
            status=message.status,
            thread_id=message.thread_id,
            is_anonymous=message.sender_id is None,
            created_at=as_utc(message.created_at),
            reply=self._reply_view(reply) if reply else None,
        )

    def list_inbox(self, receiver_id: str, limit: int = DEFAULT_PAGE_SIZE) -> list[MessageView]:
        """Return pending messages for ``receiver_id``, newest first."""
        rows = self._store.query(
            "messages",
            {"receiver_id": receiver_id, "status": MESSAGE_STATUS_PENDING},
            order=("-created_at",),
            limit=limit,
        )
        return [self._message_view(message) for message in self._decode_messages(rows)]

    def _replies_for(self, messages: list[MessageRecord]) -> dict[str, ReplyRecord]:
        replies: dict[str, ReplyRecord] = {}
        if not messages:
            return replies
        rows = self._store.query(
            "replies",
            {"message_id__in": [message.id for message in messages]},
        )
        for row in rows:
            try:
                reply = decode_record(ReplyRecord, row)
            except DecodeError as exc:
                logger.warning("Skipping malformed reply %s: %s", row.get("id"), exc)
                continue
            replies[reply.message_id] = reply
        return replies

    def list_history(self, receiver_id: str, limit: int = DEFAULT_PAGE_SIZE) -> list[MessageView]:
        """Return answered, archived and reported messages with their replies."""
        rows = self._store.query(
            "messages",
            {"receiver_id": receiver_id, "status__ne": MESSAGE_STATUS_PENDING},
            order=("-created_at",),
            limit=limit,
        )
        messages = self._decode_messages(rows)
        replies = self._replies_for(messages)
        return [self._message_view(message, replies.get(message.id)) for message in messages]

    def list_public(self, username: str, limit: int = DEFAULT_PAGE_SIZE) -> list[PublicExchangeView]:
        """Return the answered exchanges shown on ``username``'s public profile.

        Only ``replied`` messages are published, newest first. Content that
        cannot be opened is reported as unavailable.

        Raises:
            ProfileNotFound: If no profile has ``username``.
            DecodeError: If the profile row is malformed.
            RecordStoreError: If the store fails.
        """
        row = self._store.get("profiles", {"username": username})
        if row is None:
            raise ProfileNotFound(f"Profile {username!r} not found")
        profile = decode_record(RecipientPolicy, row)
        rows = self._store.query(
            "messages",
            {"receiver_id": profile.id, "status": MESSAGE_STATUS_REPLIED},
            order=("-created_at",),
            limit=limit,
        )
        messages = self._decode_messages(rows)
        replies = self._replies_for(messages)
        views = []
        for message in messages:
            content = self._vault.open_or_none(message.content, field="message content")
            reply = replies.get(message.id)
            views.append(
                PublicExchangeView(
                    id=message.id,
                    content=content,
                    content_available=content is not None,
                    thread_id=message.thread_id,
                    created_at=as_utc(message.created_at),
                    reply=self._reply_view(reply) if reply else None,
                )
            )
        return views

    def _owned_message(self, receiver_id: str, message_id: str) -> MessageRecord:
        row = self._store.get("messages", {"id": message_id, "receiver_id": receiver_id})
        if row is None:
            raise MessageNotFound(f"Message {message_id} not found")
        return decode_record(MessageRecord, row)

    def _transition(self, message: MessageRecord, target: str) -> None:
        if not can_transition(message.status, target):
            raise InvalidTransition(message.status, target)
        self._store.update("messages", message.id, {"status": target})

    def reply(self, receiver_id: str, message_id: str, content: str) -> str:
        """Publish a reply and mark the message as replied.

        Returns:
            The id of the new reply.

        Raises:
            MessageNotFound: If the message is not in the caller's inbox.
            InvalidTransition: If the message no longer accepts a reply.
            CryptoFailure: If the reply cannot be sealed.
            RecordStoreError: If the store fails.
        """
        message = self._owned_message(receiver_id, message_id)
        if not can_transition(message.status, MESSAGE_STATUS_REPLIED):
            raise InvalidTransition(message.status, MESSAGE_STATUS_REPLIED)
        # The reply and the status change commit together; a reply row never
        # exists for a message that is not ``replied``.
        return self._store.insert_and_update(
            "replies",
            {
                "message_id": message.id,
                "sender_id": receiver_id,
                "content": self._vault.seal(content),
            },
            "messages",
            message.id,
            {"status": MESSAGE_STATUS_REPLIED},
        )

    def report(self, receiver_id: str, message_id: str) -> None:
        """Flag a message for review."""
        self._transition(self._owned_message(receiver_id, message_id), MESSAGE_STATUS_REPORTED)

    def archive(self, receiver_id: str, message_id: str) -> None:
        """Discard a message from the inbox without answering it."""
        self._transition(self._owned_message(receiver_id, message_id), MESSAGE_STATUS_ARCHIVED)

"""Message submission pipeline.

Every inbound message passes the same ordered checks before it is stored:

1. admission limiter (per source key)
2. global banned terms
3. recipient lookup
4. paused inbox
5. recipient blocked phrases
6. sender identity (best effort, never rejects)
7. thread integrity (threaded follow-ups only)
8. sealing of the content
9. persistence as a ``pending`` message
10. detached notification

The first failing step decides the outcome. Steps 1-8 are bounded by a
timeout and have no side effects beyond the rate counter, so abandoning them
is safe. Step 9 is a single insert and is the point of no return; it is not
subject to the timeout. Step 10 never influences the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from replied.core.errors import (
    CryptoFailure,
    DecodeError,
    DependencyFailure,
    PolicyRejection,
    RateLimited,
    RecordStoreError,
    RepliedError,
)
from replied.models.message import MESSAGE_STATUS_PENDING
from replied.repositories.record_store import RecordStore
from replied.schemas.records import RecipientPolicy, decode_record
from replied.services.content_guard import ContentGuard
from replied.services.crypto import CryptoVault
from replied.services.identity import IdentityProvider
from replied.services.notifications import NotificationDispatcher
from replied.services.rate_limit import AdmissionLimiter
from replied.services.threads import ThreadIntegrityVerifier

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    """Error taxonomy category of a submission outcome."""

    ACCEPTED = "accepted"
    POLICY_REJECTION = "policy_rejection"
    RATE_LIMITED = "rate_limited"
    DEPENDENCY_FAILURE = "dependency_failure"
    CRYPTO_FAILURE = "crypto_failure"
    TRANSIENT_FAILURE = "transient_failure"


class Reason:
    """Stable reason codes reported for rejected submissions."""

    RATE_LIMITED = "rate_limited"
    PROHIBITED_CONTENT = "prohibited_content"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    RECIPIENT_LOOKUP_FAILED = "recipient_lookup_failed"
    INBOX_PAUSED = "inbox_paused"
    BLOCKED_PHRASE = "blocked_phrase"
    THREAD_INTEGRITY = "thread_integrity"
    THREAD_LOOKUP_FAILED = "thread_lookup_failed"
    ENCRYPTION_FAILED = "encryption_failed"
    STORAGE_FAILED = "storage_failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SubmissionRequest:
    """One inbound message as received from the HTTP layer."""

    receiver_id: str
    content: str
    source_key: str
    thread_id: str | None = None
    identity_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Terminal result of a submission; there is no partial success."""

    kind: OutcomeKind
    reason: str | None = None
    detail: str | None = None
    message_id: str | None = None

    @property
    def accepted(self) -> bool:
        return self.kind is OutcomeKind.ACCEPTED

    @classmethod
    def success(cls, message_id: str) -> SubmissionOutcome:
        return cls(kind=OutcomeKind.ACCEPTED, message_id=message_id)

    @classmethod
    def rejected(cls, kind: OutcomeKind, reason: str, detail: str) -> SubmissionOutcome:
        return cls(kind=kind, reason=reason, detail=detail)


@dataclass(frozen=True)
class _Draft:
    """A message that passed every check and is ready to be stored."""

    record: dict[str, Any]
    policy: RecipientPolicy
    contact: str | None


class SubmissionPipeline:
    """Sequence the admission checks, sealing, storage and notification."""

    def __init__(
        self,
        *,
        store: RecordStore,
        vault: CryptoVault,
        guard: ContentGuard,
        limiter: AdmissionLimiter,
        identity: IdentityProvider,
        threads: ThreadIntegrityVerifier,
        dispatcher: NotificationDispatcher,
        timeout_seconds: float = 10.0,
        reject_on_seal_failure: bool = False,
    ) -> None:
        self._store = store
        self._vault = vault
        self._guard = guard
        self._limiter = limiter
        self._identity = identity
        self._threads = threads
        self._dispatcher = dispatcher
        self._timeout = timeout_seconds
        self._reject_on_seal_failure = reject_on_seal_failure

    async def submit(self, request: SubmissionRequest) -> SubmissionOutcome:
        """Run ``request`` through the pipeline and report the outcome."""
        try:
            async with asyncio.timeout(self._timeout):
                draft = await self._prepare(request)
        except TimeoutError:
            logger.warning("Submission timed out before persistence")
            return SubmissionOutcome.rejected(
                OutcomeKind.TRANSIENT_FAILURE,
                Reason.TIMEOUT,
                "Submission timed out, please try again",
            )
        except RepliedError as exc:
            outcome = self._outcome_for(exc)
            logger.info("Submission rejected: %s", outcome.reason)
            return outcome

        try:
            message_id = await asyncio.to_thread(self._store.insert, "messages", draft.record)
        except RecordStoreError:
            return SubmissionOutcome.rejected(
                OutcomeKind.DEPENDENCY_FAILURE,
                Reason.STORAGE_FAILED,
                "Failed to send message",
            )

        if draft.contact:
            self._dispatcher.dispatch(draft.contact, draft.policy.greeting_name, request.content)
        return SubmissionOutcome.success(message_id)

    def _outcome_for(self, exc: RepliedError) -> SubmissionOutcome:
        if isinstance(exc, RateLimited):
            return SubmissionOutcome.rejected(OutcomeKind.RATE_LIMITED, Reason.RATE_LIMITED, str(exc))
        if isinstance(exc, PolicyRejection):
            return SubmissionOutcome.rejected(OutcomeKind.POLICY_REJECTION, exc.reason, exc.detail)
        if isinstance(exc, DependencyFailure):
            return SubmissionOutcome.rejected(OutcomeKind.DEPENDENCY_FAILURE, exc.reason, exc.detail)
        if isinstance(exc, CryptoFailure):
            return SubmissionOutcome.rejected(
                OutcomeKind.CRYPTO_FAILURE,
                Reason.ENCRYPTION_FAILED,
                "Message could not be encrypted",
            )
        return SubmissionOutcome.rejected(OutcomeKind.DEPENDENCY_FAILURE, Reason.STORAGE_FAILED, str(exc))

    async def _prepare(self, request: SubmissionRequest) -> _Draft:
        if not await asyncio.to_thread(self._limiter.admit, request.source_key):
            minutes = max(1, self._limiter.window_seconds // 60)
            raise RateLimited(f"Too many messages. Please wait {minutes} minutes.")

        if self._guard.is_globally_prohibited(request.content):
            raise PolicyRejection(Reason.PROHIBITED_CONTENT, "Message contains prohibited content")

        policy = await asyncio.to_thread(self._load_recipient, request.receiver_id)
        contact = self._vault.open_or_none(policy.email, field="recipient contact")

        if policy.is_paused:
            raise PolicyRejection(Reason.INBOX_PAUSED, "This inbox is currently paused by the owner")

        if self._guard.is_policy_blocked(request.content, policy):
            raise PolicyRejection(
                Reason.BLOCKED_PHRASE,
                "Message contains a phrase blocked by the user",
            )

        sender_id = await self._resolve_sender(request.identity_token)

        if request.thread_id:
            allowed = await asyncio.to_thread(self._threads.verify, request.thread_id, sender_id)
            if not allowed:
                raise PolicyRejection(
                    Reason.THREAD_INTEGRITY,
                    "Only the original sender can ask a follow-up",
                )

        record: dict[str, Any] = {
            "receiver_id": policy.id,
            "content": self._seal_content(request.content),
            "status": MESSAGE_STATUS_PENDING,
            "sender_id": sender_id,
            "thread_id": request.thread_id,
        }
        return _Draft(record=record, policy=policy, contact=contact)

    def _load_recipient(self, receiver_id: str) -> RecipientPolicy:
        try:
            raw = self._store.get("profiles", {"id": receiver_id})
        except RecordStoreError as exc:
            raise DependencyFailure(
                Reason.RECIPIENT_LOOKUP_FAILED,
                "Could not verify receiver status",
            ) from exc
        if raw is None:
            raise PolicyRejection(Reason.RECIPIENT_NOT_FOUND, "Recipient not found")
        try:
            return decode_record(RecipientPolicy, raw)
        except DecodeError as exc:
            logger.error("Recipient profile %s is malformed: %s", receiver_id, exc)
            raise DependencyFailure(
                Reason.RECIPIENT_LOOKUP_FAILED,
                "Could not verify receiver status",
            ) from exc

    async def _resolve_sender(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            principal = await self._identity.verify(token)
        except DependencyFailure as exc:
            logger.warning("Identity provider unavailable, sending anonymously: %s", exc)
            return None
        return principal.user_id if principal else None

    def _seal_content(self, content: str) -> str:
        try:
            return self._vault.seal(content)
        except CryptoFailure as exc:
            if self._reject_on_seal_failure:
                raise
            # Known weakness: the message is stored readable. Controlled by
            # REJECT_ON_SEAL_FAILURE.
            logger.warning("Encryption failed, storing message content unencrypted: %s", exc)
            return content

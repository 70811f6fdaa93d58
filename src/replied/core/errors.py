"""Exception hierarchy shared by the Replied services.

Pipeline steps raise these; the submission pipeline translates every one of
them into a stable :class:`~replied.services.submission.SubmissionOutcome`.
"""

from __future__ import annotations


class RepliedError(RuntimeError):
    """Base class for every error raised by the Replied core."""


class PolicyRejection(RepliedError):
    """Raised when a submission breaks a content, inbox or thread rule.

    These are caused by the sender and are never retried.
    """

    def __init__(self, reason: str, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class RateLimited(RepliedError):
    """Raised when a source key has exhausted its admission window."""

    reason = "rate_limited"


class DependencyFailure(RepliedError):
    """Raised when an external collaborator (store, identity, lookup) fails."""

    def __init__(self, reason: str, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class RecordStoreError(DependencyFailure):
    """Raised when the record store cannot complete an operation."""

    def __init__(self, detail: str) -> None:
        super().__init__("storage_failed", detail)


class IdentityProviderError(DependencyFailure):
    """Raised when the identity provider cannot be reached."""

    def __init__(self, detail: str) -> None:
        super().__init__("identity_unavailable", detail)


class DecodeError(RepliedError):
    """Raised when a stored record does not match its typed schema."""


class CryptoFailure(RepliedError):
    """Base class for at-rest encryption failures."""


class ConfigurationError(CryptoFailure):
    """Raised when the encryption key is absent or malformed."""


class IntegrityError(CryptoFailure):
    """Raised when a sealed token is truncated, garbled or tampered with."""


class MessageNotFound(RepliedError):
    """Raised when a message does not exist or is not owned by the caller."""


class ProfileNotFound(RepliedError):
    """Raised when no profile has the requested username."""


class InvalidTransition(RepliedError):
    """Raised when a status change would move a message backwards."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move message from {current!r} to {target!r}")
        self.current = current
        self.target = target

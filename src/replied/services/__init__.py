# src/replied/services/__init__.py
"""Business logic services for the Replied application."""

from .background import BackgroundTaskRunner
from .content_guard import ContentGuard
from .crypto import CryptoVault
from .lifecycle import MessageLifecycle
from .notifications import NotificationDispatcher
from .rate_limit import AdmissionLimiter
from .submission import SubmissionOutcome, SubmissionPipeline, SubmissionRequest
from .threads import ThreadIntegrityVerifier

__all__ = [
    "AdmissionLimiter",
    "BackgroundTaskRunner",
    "ContentGuard",
    "CryptoVault",
    "MessageLifecycle",
    "NotificationDispatcher",
    "SubmissionOutcome",
    "SubmissionPipeline",
    "SubmissionRequest",
    "ThreadIntegrityVerifier",
]

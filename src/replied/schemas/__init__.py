# src/replied/schemas/__init__.py
"""
Pydantic schemas for stored records and API request/response models.
"""

from .messages import (
    MessageSubmit,
    MessageView,
    PublicExchangeView,
    ReplyCreate,
    ReplyView,
    StatusResponse,
    SubmissionAccepted,
    SubmissionRejected,
)
from .records import (
    MessageRecord,
    Principal,
    RecipientPolicy,
    ReplyRecord,
    ThreadRoot,
    decode_record,
)

__all__ = [
    "MessageRecord", "Principal", "RecipientPolicy", "ReplyRecord", "ThreadRoot",
    "decode_record",
    "MessageSubmit", "MessageView", "PublicExchangeView", "ReplyCreate", "ReplyView",
    "StatusResponse", "SubmissionAccepted", "SubmissionRejected",
]

# src/replied/api/v1/endpoints/messages.py
"""Message submission and inbox endpoints for the Replied API."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse

from replied.api.v1.dependencies import (
    CurrentPrincipalDep,
    LifecycleDep,
    PipelineDep,
    SourceKeyDep,
)
from replied.core.errors import (
    CryptoFailure,
    DecodeError,
    DependencyFailure,
    InvalidTransition,
    MessageNotFound,
)
from replied.schemas.messages import (
    MessageSubmit,
    MessageView,
    ReplyCreate,
    StatusResponse,
    SubmissionAccepted,
    SubmissionRejected,
)
from replied.services.identity import extract_bearer
from replied.services.submission import Reason, SubmissionRequest

router = APIRouter(prefix="/messages", tags=["messages"])

_REJECTION_STATUS: dict[str, int] = {
    Reason.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    Reason.PROHIBITED_CONTENT: status.HTTP_403_FORBIDDEN,
    Reason.INBOX_PAUSED: status.HTTP_403_FORBIDDEN,
    Reason.BLOCKED_PHRASE: status.HTTP_403_FORBIDDEN,
    Reason.THREAD_INTEGRITY: status.HTTP_403_FORBIDDEN,
    Reason.RECIPIENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Reason.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def rejection_status(reason: str | None) -> int:
    """Map a rejection reason code to an HTTP status code."""
    return _REJECTION_STATUS.get(reason or "", status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.post(
    "/send",
    status_code=status.HTTP_201_CREATED,
    response_model=SubmissionAccepted,
    responses={
        403: {"model": SubmissionRejected},
        404: {"model": SubmissionRejected},
        429: {"model": SubmissionRejected},
        500: {"model": SubmissionRejected},
        503: {"model": SubmissionRejected},
    },
)
async def send_message(
    payload: MessageSubmit,
    pipeline: PipelineDep,
    source_key: SourceKeyDep,
    authorization: Annotated[str | None, Header()] = None,
) -> SubmissionAccepted | JSONResponse:
    """Deliver a message to a recipient's inbox, anonymously unless signed in."""
    outcome = await pipeline.submit(
        SubmissionRequest(
            receiver_id=payload.receiver_id,
            content=payload.content,
            source_key=source_key,
            thread_id=payload.thread_id,
            identity_token=extract_bearer(authorization),
        )
    )
    if outcome.accepted and outcome.message_id is not None:
        return SubmissionAccepted(message_id=outcome.message_id)
    body = SubmissionRejected(reason=outcome.reason or "unknown", detail=outcome.detail or "")
    return JSONResponse(status_code=rejection_status(outcome.reason), content=body.model_dump())


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, MessageNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, CryptoFailure):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Encryption failed",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Storage unavailable",
    )


_LIFECYCLE_ERRORS = (MessageNotFound, InvalidTransition, CryptoFailure, DecodeError, DependencyFailure)


@router.get("/inbox", response_model=list[MessageView])
async def get_inbox(
    principal: CurrentPrincipalDep,
    lifecycle: LifecycleDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[MessageView]:
    """Get pending messages for the current user."""
    try:
        return await asyncio.to_thread(lifecycle.list_inbox, principal.user_id, limit)
    except _LIFECYCLE_ERRORS as exc:
        raise _http_error(exc) from exc


@router.get("/history", response_model=list[MessageView])
async def get_history(
    principal: CurrentPrincipalDep,
    lifecycle: LifecycleDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[MessageView]:
    """Get answered, archived and reported messages for the current user."""
    try:
        return await asyncio.to_thread(lifecycle.list_history, principal.user_id, limit)
    except _LIFECYCLE_ERRORS as exc:
        raise _http_error(exc) from exc


@router.post("/{message_id}/reply")
async def reply_to_message(
    message_id: str,
    payload: ReplyCreate,
    principal: CurrentPrincipalDep,
    lifecycle: LifecycleDep,
) -> dict[str, str]:
    """Publish a reply, making the exchange public."""
    try:
        reply_id = await asyncio.to_thread(
            lifecycle.reply, principal.user_id, message_id, payload.content
        )
    except _LIFECYCLE_ERRORS as exc:
        raise _http_error(exc) from exc
    return {"status": "published", "reply_id": reply_id}


@router.post("/{message_id}/report", response_model=StatusResponse)
async def report_message(
    message_id: str,
    principal: CurrentPrincipalDep,
    lifecycle: LifecycleDep,
) -> StatusResponse:
    """Flag a message for review."""
    try:
        await asyncio.to_thread(lifecycle.report, principal.user_id, message_id)
    except _LIFECYCLE_ERRORS as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="reported")


@router.post("/{message_id}/archive", response_model=StatusResponse)
async def archive_message(
    message_id: str,
    principal: CurrentPrincipalDep,
    lifecycle: LifecycleDep,
) -> StatusResponse:
    """Discard a message without answering it."""
    try:
        await asyncio.to_thread(lifecycle.archive, principal.user_id, message_id)
    except _LIFECYCLE_ERRORS as exc:
        raise _http_error(exc) from exc
    return StatusResponse(status="archived")

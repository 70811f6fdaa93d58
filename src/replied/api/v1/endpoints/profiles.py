# src/replied/api/v1/endpoints/profiles.py
"""Public profile endpoints for the Replied API."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Query, status

from replied.api.v1.dependencies import LifecycleDep
from replied.core.errors import DecodeError, DependencyFailure, ProfileNotFound
from replied.schemas.messages import PublicExchangeView

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/{username}/messages", response_model=list[PublicExchangeView])
async def get_public_messages(
    username: str,
    lifecycle: LifecycleDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[PublicExchangeView]:
    """Get the answered exchanges published on a user's profile."""
    try:
        return await asyncio.to_thread(lifecycle.list_public, username, limit)
    except ProfileNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found") from exc
    except (DecodeError, DependencyFailure) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch messages",
        ) from exc

"""Shared API dependencies for authentication and service access."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from replied.core.container import ServiceContainer
from replied.core.errors import IdentityProviderError
from replied.schemas.records import Principal
from replied.services.lifecycle import MessageLifecycle
from replied.services.submission import SubmissionPipeline

# HTTP Bearer scheme for identity-provider tokens
bearer_scheme = HTTPBearer()


def get_container(request: Request) -> ServiceContainer:
    """Return the service container built during application start-up."""
    return request.app.state.container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


def get_pipeline(container: ContainerDep) -> SubmissionPipeline:
    return container.pipeline


def get_lifecycle(container: ContainerDep) -> MessageLifecycle:
    return container.lifecycle


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    container: ContainerDep,
) -> Principal:
    """Resolve the bearer token to a principal.

    Raises:
        HTTPException: 401 if the token is rejected, 503 if the identity
            provider cannot be reached.
    """
    try:
        principal = await container.identity.verify(credentials.credentials)
    except IdentityProviderError as err:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity provider unavailable",
        ) from err
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return principal


def resolve_source_key(peer: str, forwarded: str, trusted_proxies: Sequence[str]) -> str:
    """Pick the client address from the peer and its ``X-Forwarded-For`` chain.

    The chain is walked from the right, skipping trusted proxies; the first
    untrusted hop is the client. A peer that is not a trusted proxy is the
    client itself and its header is ignored.
    """
    trust_all = "*" in trusted_proxies

    def trusted(address: str) -> bool:
        return trust_all or address in trusted_proxies

    if not trusted(peer):
        return peer
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not trusted(hop):
            return hop
    return hops[0] if hops else peer


def client_source_key(request: Request, container: ContainerDep) -> str:
    """Return the key used to bucket rate-limit counters for ``request``."""
    peer = request.client.host if request.client is not None else "unknown"
    return resolve_source_key(
        peer,
        request.headers.get("x-forwarded-for", ""),
        container.settings.trusted_proxies,
    )


PipelineDep = Annotated[SubmissionPipeline, Depends(get_pipeline)]
LifecycleDep = Annotated[MessageLifecycle, Depends(get_lifecycle)]
CurrentPrincipalDep = Annotated[Principal, Depends(get_current_principal)]
SourceKeyDep = Annotated[str, Depends(client_source_key)]

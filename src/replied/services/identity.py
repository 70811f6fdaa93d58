"""Identity provider adapters.

The core never inspects bearer tokens itself; it asks an identity provider to
map a token to a :class:`~replied.schemas.records.Principal`.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from jose import JWTError, jwt
from pydantic import ValidationError

from replied.core.errors import IdentityProviderError
from replied.core.settings import Settings
from replied.schemas.records import Principal

logger = logging.getLogger(__name__)

HTTP_OK = 200


class IdentityProvider(Protocol):
    """Black-box ``verify(token) -> principal`` collaborator."""

    async def verify(self, token: str) -> Principal | None: ...

    async def close(self) -> None: ...


class JWTIdentityProvider:
    """Verify tokens locally against the provider's signing secret."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: str | None = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    async def verify(self, token: str) -> Principal | None:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError:
            return None
        subject = payload.get("sub")
        if not subject:
            return None
        return Principal(user_id=str(subject), email=payload.get("email"))

    async def close(self) -> None:
        return None


class GoTrueIdentityProvider:
    """Ask a GoTrue-compatible auth server who owns a token."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"apikey": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def verify(self, token: str) -> Principal | None:
        """Return the principal for ``token`` or None when it is rejected.

        Raises:
            IdentityProviderError: If the auth server cannot be reached.
        """
        try:
            response = await self._client.get(
                "/auth/v1/user",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc
        if response.status_code != HTTP_OK:
            return None
        try:
            payload = response.json()
            return Principal(user_id=str(payload["id"]), email=payload.get("email"))
        except (ValueError, KeyError, TypeError, ValidationError):
            logger.warning("Identity provider returned an unexpected user payload")
            return None

    async def close(self) -> None:
        await self._client.aclose()


class RejectingIdentityProvider:
    """Fallback used when no identity provider is configured."""

    async def verify(self, token: str) -> Principal | None:
        return None

    async def close(self) -> None:
        return None


def build_identity_provider(config: Settings) -> IdentityProvider:
    """Select the identity provider described by the settings."""
    if config.identity_jwt_secret:
        return JWTIdentityProvider(
            config.identity_jwt_secret,
            algorithm=config.identity_jwt_algorithm,
            audience=config.identity_jwt_audience,
        )
    if config.supabase_url:
        return GoTrueIdentityProvider(
            config.supabase_url,
            config.supabase_service_role_key,
            timeout_seconds=config.identity_http_timeout_seconds,
        )
    logger.warning("No identity provider configured; every sender will be anonymous")
    return RejectingIdentityProvider()


def extract_bearer(header_value: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header value."""
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

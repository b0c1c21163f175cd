"""
Bearer token resolution for upstream calls.

Resolution order, first match wins:
1. a bearer token forwarded on the inbound request;
2. a cached client-credentials service token;
3. the delegated (authorization-code) token, refreshed when expired.
"""

from __future__ import annotations

import re

from capture_bridge.auth.oauth import OAuthClientProtocol
from capture_bridge.auth.schemas import Credential, TokenStrategy
from capture_bridge.auth.store import CredentialStore
from capture_bridge.config import Settings
from capture_bridge.shared.exceptions import AuthError, NotAuthorizedError
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)\s*$", re.IGNORECASE)
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def parse_bearer(header: str | None) -> str | None:
    """Return the token from ``Bearer <token>``; None when no header was sent.

    Raises:
        AuthError: If a header is present but not a bearer credential.
    """
    if header is None or not header.strip():
        return None
    match = _BEARER_RE.match(header.strip())
    if match is None:
        raise AuthError(
            message="Authorization header must be 'Bearer <token>'",
            code="INVALID_AUTHORIZATION_HEADER",
            status_code=401,
        )
    return match.group(1)


def org_id_from_token(token: str) -> str | None:
    """Platform access tokens end in ``_<cluster>_<orgId>``."""
    tail = token.rsplit("_", 1)
    if len(tail) == 2 and _UUID_RE.match(tail[1]):
        return tail[1]
    return None


def resolve_org_id(settings: Settings, token: str | None) -> str | None:
    if settings.org_id:
        return settings.org_id
    if token:
        return org_id_from_token(token)
    return None


class TokenProvider:
    def __init__(
        self,
        settings: Settings,
        oauth_client: OAuthClientProtocol,
        store: CredentialStore,
    ) -> None:
        self._settings = settings
        self._oauth = oauth_client
        self._store = store

    async def get_token(self, authorization: str | None = None) -> str:
        """Resolve a bearer token for upstream calls.

        Args:
            authorization: Raw inbound Authorization header, if any.

        Raises:
            AuthError: No credential source, malformed header, or grant failure.
            NotAuthorizedError: Delegated flow selected but not (or no longer) authorized.
        """
        if self._settings.trust_forwarded_bearer:
            forwarded = parse_bearer(authorization)
            if forwarded:
                logger.debug("Using forwarded bearer token")
                return forwarded

        flow = self._settings.oauth_flow
        if flow == TokenStrategy.CLIENT_CREDENTIALS.value and self._settings.has_client_credentials:
            credential = await self._store.get_or_refresh(
                TokenStrategy.CLIENT_CREDENTIALS, self._service_grant
            )
            return credential.token

        if flow == TokenStrategy.AUTHORIZATION_CODE.value:
            credential = await self._store.get_or_refresh(
                TokenStrategy.AUTHORIZATION_CODE, self._delegated_refresh
            )
            return credential.token

        raise AuthError(
            message="No credential source configured: forward a bearer token or configure client credentials",
            code="NO_CREDENTIAL_SOURCE",
            status_code=500,
        )

    async def store_authorization_code(self, code: str) -> Credential:
        """Complete the delegated flow and cache its credential."""
        now = self._store.now()
        token = await self._oauth.exchange_code(code)
        credential = token.to_credential(now)
        self._store.put(TokenStrategy.AUTHORIZATION_CODE, credential)
        logger.info(
            "Delegated credential stored",
            extra={"expires_in": token.expires_in, "has_refresh_token": credential.refresh_token is not None},
        )
        return credential

    async def _service_grant(self, _current: Credential | None) -> Credential:
        now = self._store.now()
        token = await self._oauth.client_credentials_grant()
        return token.to_credential(now)

    async def _delegated_refresh(self, current: Credential | None) -> Credential:
        if current is None:
            raise NotAuthorizedError("Not authorized yet; visit /oauth/login to authorize")
        if not current.refresh_token:
            self._store.clear(TokenStrategy.AUTHORIZATION_CODE)
            raise NotAuthorizedError("Authorization expired; visit /oauth/login to re-authorize")
        now = self._store.now()
        token = await self._oauth.refresh(current.refresh_token)
        return token.to_credential(now, previous_refresh_token=current.refresh_token)

"""
OAuth client for the contact-center platform's token endpoint.
"""

import secrets
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx

from capture_bridge.auth.schemas import OAuthTokenResponse
from capture_bridge.config import Settings, get_settings
from capture_bridge.shared.exceptions import AuthError
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)


class OAuthClientProtocol(Protocol):
    """Protocol for OAuth grant operations."""

    def authorization_url(self, state: str) -> str: ...
    async def client_credentials_grant(self) -> OAuthTokenResponse: ...
    async def exchange_code(self, code: str) -> OAuthTokenResponse: ...
    async def refresh(self, refresh_token: str) -> OAuthTokenResponse: ...
    def generate_state(self) -> str: ...


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class OAuthClient:
    """Issues client-credentials, authorization-code and refresh grants."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OAuth client.

        Args:
            settings: Application settings. Uses default if not provided.
            http_client: HTTP client for making requests. Creates new if not provided.
        """
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._settings.token_timeout_seconds,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client if owned."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def generate_state(self) -> str:
        """Generate a cryptographically secure state parameter."""
        return secrets.token_urlsafe(32)

    def authorization_url(self, state: str) -> str:
        """Build the authorize URL the browser is redirected to for the delegated flow."""
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "scope": self._settings.scope,
            "state": state,
        }
        return f"{self._settings.authorize_url}?{urlencode(params)}"

    async def client_credentials_grant(self) -> OAuthTokenResponse:
        """Request a service token.

        Raises:
            AuthError: If the grant fails.
        """
        data = {"grant_type": "client_credentials"}
        if self._settings.scope:
            data["scope"] = self._settings.scope
        return await self._grant(data, "client_credentials")

    async def exchange_code(self, code: str) -> OAuthTokenResponse:
        """Exchange an authorization code for access and refresh tokens.

        Raises:
            AuthError: If the exchange fails.
        """
        return await self._grant(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._settings.redirect_uri,
            },
            "authorization_code",
        )

    async def refresh(self, refresh_token: str) -> OAuthTokenResponse:
        """Refresh a delegated access token.

        Raises:
            AuthError: If the refresh fails.
        """
        return await self._grant(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "refresh_token",
        )

    async def _grant(self, data: dict[str, str], grant_type: str) -> OAuthTokenResponse:
        token_url = self._settings.token_url
        client = await self._get_http_client()

        try:
            response = await client.post(
                token_url,
                data=data,
                auth=(self._settings.client_id, self._settings.client_secret),
                headers={"Accept": "application/json"},
                timeout=self._settings.token_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.error("OAuth grant timed out", extra={"grant_type": grant_type, "url": token_url})
            raise AuthError(
                message=f"Token request timed out ({grant_type})",
                code="TOKEN_TIMEOUT",
                status_code=504,
                upstream={"status": None, "url": token_url, "body": str(e)},
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "OAuth grant transport failure",
                extra={"grant_type": grant_type, "url": token_url, "error": str(e)},
            )
            raise AuthError(
                message=f"Token request failed ({grant_type})",
                code="TOKEN_TRANSPORT_ERROR",
                status_code=502,
                upstream={"status": None, "url": token_url, "body": str(e)},
            ) from e

        body = _response_body(response)
        if response.status_code >= 400:
            logger.error(
                "OAuth grant rejected",
                extra={"grant_type": grant_type, "status_code": response.status_code},
            )
            raise AuthError(
                message=f"Token request rejected ({grant_type})",
                code="TOKEN_GRANT_FAILED",
                status_code=response.status_code,
                upstream={"status": response.status_code, "url": token_url, "body": body},
            )

        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthError(
                message="Token endpoint returned no access_token",
                code="TOKEN_GRANT_FAILED",
                status_code=502,
                upstream={"status": response.status_code, "url": token_url, "body": body},
            )

        token = OAuthTokenResponse.model_validate({k: v for k, v in body.items() if v is not None})
        logger.info(
            "OAuth grant succeeded",
            extra={"grant_type": grant_type, "expires_in": token.expires_in},
        )
        return token

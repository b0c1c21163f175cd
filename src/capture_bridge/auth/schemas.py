from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class TokenStrategy(str, Enum):
    """Kinds of credential the store caches; forwarded bearers are never stored."""

    CLIENT_CREDENTIALS = "client_credentials"
    AUTHORIZATION_CODE = "authorization_code"


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float
    refresh_token: str | None = None


class OAuthTokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(default=3600, ge=0)
    refresh_token: str | None = None
    refresh_token_expires_in: int | None = None
    scope: str | None = None

    def to_credential(self, now: float, previous_refresh_token: str | None = None) -> Credential:
        return Credential(
            token=self.access_token,
            expires_at=now + self.expires_in,
            refresh_token=self.refresh_token or previous_refresh_token,
        )


class AuthorizedResponse(BaseModel):
    status: str = "authorized"
    expires_at: float = Field(serialization_alias="expiresAt")

"""
Application configuration with environment-driven settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CAPTURE_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "capture-bridge"
    app_env: Literal["dev", "qa", "uat", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"

    # Upstream platform
    api_base_url: str = Field(
        default="https://api.wxcc-us1.cisco.com",
        description="Base URL of the contact-center API",
    )
    org_id: str = Field(
        default="",
        description="Tenant org id; derived from the access token when empty",
    )

    # OAuth
    token_url: str = Field(
        default="https://webexapis.com/v1/access_token",
        description="OAuth token endpoint",
    )
    authorize_url: str = Field(
        default="https://webexapis.com/v1/authorize",
        description="OAuth authorize endpoint for the delegated flow",
    )
    redirect_uri: str = Field(
        default="http://localhost:8000/oauth/callback",
        description="Redirect URI registered for the delegated flow",
    )
    client_id: str = Field(default="", description="OAuth client id")
    client_secret: str = Field(default="", description="OAuth client secret")
    scope: str = Field(
        default="cjp:config_read",
        description="Space-separated OAuth scopes",
    )
    oauth_flow: Literal["client_credentials", "authorization_code"] = Field(
        default="client_credentials",
        description="Service credentials or a delegated (user authorized) grant.",
    )
    trust_forwarded_bearer: bool = Field(
        default=True,
        description="Use an inbound Authorization bearer token verbatim when present.",
    )
    token_margin_seconds: int = Field(
        default=90,
        ge=60,
        le=120,
        description="Treat cached tokens as expired this many seconds early.",
    )

    # Result window
    default_days_back: int = Field(default=7, ge=1, le=90)
    default_lookback_hours: int | None = Field(
        default=None,
        ge=1,
        le=366 * 24,
        description="Overrides default_days_back when set.",
    )
    default_limit: int = Field(default=200, ge=1)
    max_limit: int = Field(default=1000, ge=1)

    # Interaction search
    search_backend: Literal["rest", "graphql"] = "rest"
    search_path: str = "/v1/interactions/search"
    legacy_search_path: str = "/v1/analytics/interactions/search"
    graphql_search_path: str = "/search"
    search_max_pages: int = Field(default=5, ge=1, le=50)
    search_page_size: int = Field(default=100, ge=1, le=1000)

    # Captures
    captures_query_path: str = "/v1/captures/query"
    captures_search_path: str = "/v1/captures/search"
    capture_download_path: str = "/v1/captures/{capture_id}/download"
    capture_batch_size: int = Field(default=10, ge=1, le=100)
    capture_id_field: Literal["taskIds", "interactionIds"] = "taskIds"
    capture_url_expiration: int = Field(default=3600, ge=60)
    agent_email_policy: Literal["permissive", "strict"] = Field(
        default="permissive",
        description="Keep (permissive) or drop (strict) captures with no agent email metadata.",
    )

    # Timeouts
    token_timeout_seconds: float = Field(default=15.0, gt=0)
    query_timeout_seconds: float = Field(default=30.0, gt=0)
    stream_timeout_seconds: float = Field(default=60.0, gt=0)

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    @field_validator("api_base_url", "token_url", "authorize_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def api_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.api_base_url}/{path.lstrip('/')}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()

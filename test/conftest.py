"""
Pytest configuration and shared fixtures.
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from capture_bridge.auth.store import CredentialStore
from capture_bridge.config import Settings
from capture_bridge.main import create_app
from capture_bridge.upstream.client import UpstreamClient

API_BASE = "https://api.test"
TOKEN_URL = "https://idp.test/token"
ORG_ID = "0f2c5b1e-8d7a-4c3b-9e6f-1a2b3c4d5e6f"


class FakeClock:
    """Manually advanced clock for credential expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "app_env": "dev",
        "debug": True,
        "api_base_url": API_BASE,
        "token_url": TOKEN_URL,
        "authorize_url": "https://idp.test/authorize",
        "redirect_uri": "http://localhost:8000/oauth/callback",
        "client_id": "test-client",
        "client_secret": "test-secret",
        "scope": "cjp:config_read",
        "org_id": ORG_ID,
        "oauth_flow": "client_credentials",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credential_store(clock: FakeClock, test_settings: Settings) -> CredentialStore:
    return CredentialStore(margin_seconds=test_settings.token_margin_seconds, clock=clock)


@pytest_asyncio.fixture
async def upstream_client(test_settings: Settings) -> AsyncGenerator[UpstreamClient, None]:
    client = UpstreamClient(test_settings)
    yield client
    await client.close()


@pytest.fixture
def app_instance(test_settings: Settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def async_client(app_instance) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API tests."""
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app_instance.state.upstream_client.close()
    await app_instance.state.oauth_client.close()

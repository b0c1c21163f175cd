"""
FastAPI dependencies.

Long-lived collaborators (settings, credential store, HTTP clients) live on
``app.state`` and are created by `create_app`; everything else is built per
request from them.
"""

from __future__ import annotations

from fastapi import Depends, Request

from capture_bridge.auth.oauth import OAuthClient
from capture_bridge.auth.provider import TokenProvider
from capture_bridge.auth.store import CredentialStore
from capture_bridge.captures.service import CaptureService
from capture_bridge.config import Settings
from capture_bridge.upstream.captures import CaptureLookup
from capture_bridge.upstream.client import UpstreamClient
from capture_bridge.upstream.relay import MediaRelay
from capture_bridge.upstream.search import InteractionSearch


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_oauth_client(request: Request) -> OAuthClient:
    return request.app.state.oauth_client


def get_upstream_client(request: Request) -> UpstreamClient:
    return request.app.state.upstream_client


def get_token_provider(
    settings: Settings = Depends(get_app_settings),
    oauth_client: OAuthClient = Depends(get_oauth_client),
    store: CredentialStore = Depends(get_credential_store),
) -> TokenProvider:
    return TokenProvider(settings, oauth_client, store)


def get_capture_service(
    settings: Settings = Depends(get_app_settings),
    client: UpstreamClient = Depends(get_upstream_client),
) -> CaptureService:
    return CaptureService(
        settings,
        InteractionSearch(settings, client),
        CaptureLookup(settings, client),
    )


def get_media_relay(
    settings: Settings = Depends(get_app_settings),
    client: UpstreamClient = Depends(get_upstream_client),
) -> MediaRelay:
    return MediaRelay(settings, client)

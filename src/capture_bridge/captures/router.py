"""Widget-facing API routes: interactions, recent captures, playback and legacy recording lookups."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from capture_bridge.auth.provider import TokenProvider, resolve_org_id
from capture_bridge.captures.models import (
    InteractionsResponse,
    RecentCapturesResponse,
    RecordingQuery,
)
from capture_bridge.captures.service import (
    CaptureService,
    require_agent_email,
    require_recording_id,
)
from capture_bridge.config import Settings
from capture_bridge.dependencies import (
    get_app_settings,
    get_capture_service,
    get_media_relay,
    get_token_provider,
)
from capture_bridge.shared.logging import get_logger
from capture_bridge.upstream.relay import MediaRelay

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["captures"])


async def _bearer(request: Request, provider: TokenProvider) -> str:
    return await provider.get_token(request.headers.get("authorization"))


@router.get("/interactions", response_model=InteractionsResponse, response_model_by_alias=True)
async def list_interactions(
    request: Request,
    agent_email: Optional[str] = Query(None, alias="agentEmail"),
    days_back: Optional[str] = Query(None, alias="daysBack"),
    hours: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
    provider: TokenProvider = Depends(get_token_provider),
    service: CaptureService = Depends(get_capture_service),
) -> InteractionsResponse:
    email = require_agent_email(agent_email)
    window = service.resolve_window(hours=hours, days_back=days_back, limit=limit)
    token = await _bearer(request, provider)
    return await service.list_interactions(
        token=token,
        agent_email=email,
        window=window,
        org_id=resolve_org_id(settings, token),
    )


@router.get("/captures/recent", response_model=RecentCapturesResponse, response_model_by_alias=True)
async def recent_captures(
    request: Request,
    agent_email: Optional[str] = Query(None, alias="agentEmail"),
    hours: Optional[str] = Query(None),
    days_back: Optional[str] = Query(None, alias="daysBack"),
    limit: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
    provider: TokenProvider = Depends(get_token_provider),
    service: CaptureService = Depends(get_capture_service),
) -> RecentCapturesResponse:
    email = require_agent_email(agent_email)
    window = service.resolve_window(hours=hours, days_back=days_back, limit=limit)
    token = await _bearer(request, provider)
    return await service.recent_captures(
        token=token,
        agent_email=email,
        window=window,
        org_id=resolve_org_id(settings, token),
    )


@router.get("/capture/{capture_id}/stream")
async def stream_capture(
    capture_id: str,
    request: Request,
    provider: TokenProvider = Depends(get_token_provider),
    relay: MediaRelay = Depends(get_media_relay),
) -> StreamingResponse:
    token = await _bearer(request, provider)
    media = await relay.open(capture_id, token=token)
    return StreamingResponse(
        media.chunks,
        media_type=media.content_type,
        background=BackgroundTask(media.close),
    )


async def _recording_lookup(
    request: Request,
    query: RecordingQuery,
    settings: Settings,
    provider: TokenProvider,
    service: CaptureService,
) -> dict[str, Any]:
    require_recording_id(query.task_id, query.interaction_id)
    token = await _bearer(request, provider)
    match = await service.find_recording(
        token=token,
        task_id=query.task_id,
        interaction_id=query.interaction_id,
        org_id=resolve_org_id(settings, token),
    )
    if match is None:
        return {"urls": []}
    return match.model_dump(by_alias=True)


@router.get("/recordings")
async def get_recording(
    request: Request,
    task_id: Optional[str] = Query(None, alias="taskId"),
    interaction_id: Optional[str] = Query(None, alias="interactionId"),
    settings: Settings = Depends(get_app_settings),
    provider: TokenProvider = Depends(get_token_provider),
    service: CaptureService = Depends(get_capture_service),
) -> dict[str, Any]:
    query = RecordingQuery(task_id=task_id, interaction_id=interaction_id)
    return await _recording_lookup(request, query, settings, provider, service)


@router.post("/recordings/query")
async def query_recording(
    request: Request,
    query: RecordingQuery,
    settings: Settings = Depends(get_app_settings),
    provider: TokenProvider = Depends(get_token_provider),
    service: CaptureService = Depends(get_capture_service),
) -> dict[str, Any]:
    return await _recording_lookup(request, query, settings, provider, service)

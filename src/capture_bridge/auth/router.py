"""Delegated OAuth routes: start the authorization-code flow and receive its callback."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from capture_bridge.auth.oauth import OAuthClient
from capture_bridge.auth.provider import TokenProvider
from capture_bridge.auth.schemas import AuthorizedResponse
from capture_bridge.dependencies import get_oauth_client, get_token_provider
from capture_bridge.shared.exceptions import ValidationError
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])

# In-memory state storage; single-process only.
_state_storage: set[str] = set()


@router.get("/login", summary="Start the delegated OAuth flow")
async def login(oauth_client: OAuthClient = Depends(get_oauth_client)) -> RedirectResponse:
    state = oauth_client.generate_state()
    _state_storage.add(state)

    logger.info("Redirecting to OAuth authorize endpoint", extra={"state": state[:8] + "..."})
    return RedirectResponse(
        url=oauth_client.authorization_url(state),
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/callback",
    summary="Complete the delegated OAuth flow",
    response_model=AuthorizedResponse,
    response_model_by_alias=True,
)
async def callback(
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="CSRF state parameter"),
    error: Optional[str] = Query(None, description="Error code from provider"),
    error_description: Optional[str] = Query(None, description="Error description"),
    provider: TokenProvider = Depends(get_token_provider),
) -> AuthorizedResponse:
    if error:
        logger.warning("OAuth provider returned error", extra={"error": error, "description": error_description})
        raise ValidationError(
            f"Authorization failed: {error}",
            {"description": error_description},
        )
    if not code:
        raise ValidationError("code is required")
    if not state or state not in _state_storage:
        raise ValidationError("Invalid state parameter")
    _state_storage.discard(state)

    credential = await provider.store_authorization_code(code)
    return AuthorizedResponse(expires_at=credential.expires_at)

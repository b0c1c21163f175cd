"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from capture_bridge.auth.oauth import OAuthClient
from capture_bridge.auth.router import router as oauth_router
from capture_bridge.auth.store import CredentialStore
from capture_bridge.captures.router import router as captures_router
from capture_bridge.config import Settings, get_settings
from capture_bridge.shared.exceptions import AppException
from capture_bridge.shared.logging import get_logger, mask, setup_logging
from capture_bridge.shared.middleware import CorrelationIdMiddleware
from capture_bridge.upstream.client import UpstreamClient

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level)

    logger.info(
        "Application starting",
        extra={
            "app": settings.app_name,
            "env": settings.app_env,
            "api_base_url": settings.api_base_url,
            "oauth_flow": settings.oauth_flow,
            "client_id": mask(settings.client_id),
            "search_backend": settings.search_backend,
        },
    )

    yield

    logger.info("Shutting down application")
    await app.state.upstream_client.close()
    await app.state.oauth_client.close()
    logger.info("Application shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Capture Bridge API",
        description="Lists an agent's recent call recordings and relays their audio",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.credential_store = CredentialStore(margin_seconds=settings.token_margin_seconds)
    app.state.oauth_client = OAuthClient(settings)
    app.state.upstream_client = UpstreamClient(settings)

    # Map domain exceptions to HTTP responses
    @app.exception_handler(AppException)
    async def _app_exception(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "code": exc.code, "status_code": exc.status_code},
            )
        else:
            logger.info(
                "Request rejected",
                extra={"path": request.url.path, "code": exc.code, "status_code": exc.status_code},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    # Request validation (FastAPI/Pydantic) -> 400 in the same error shape
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "errors": errors,
            },
        )

    origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(captures_router)
    app.include_router(oauth_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("capture_bridge.main:app", host="0.0.0.0", port=8000)

"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dirphoto.api.routes import router, shell_router
from dirphoto.config import Settings, get_settings
from dirphoto.directory import PowerShellDirectoryStore
from dirphoto.imaging.pool import ProcessingPool

logger = logging.getLogger(__name__)


def _log_listen_policy(settings: Settings) -> None:
    allow_external = settings.server.allow_external_access
    if settings.authentication.enabled and allow_external:
        logger.warning("External access enabled. Server listening on all interfaces.")
    elif allow_external:
        logger.warning("External access disabled because authentication is not enabled.")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings: Settings = app.state.settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting dirphoto (auth=%s, host=%s, max_concurrent=%s, max_photo_bytes=%s)",
        settings.authentication.enabled,
        settings.listen_host,
        settings.max_concurrent,
        settings.max_photo_bytes,
    )
    _log_listen_policy(settings)

    processing_pool = ProcessingPool(settings)
    app.state.processing_pool = processing_pool
    app.state.directory_store = PowerShellDirectoryStore(settings)

    logger.info("dirphoto ready")
    yield

    logger.info("Shutting down dirphoto")
    processing_pool.shutdown()
    logger.info("dirphoto shutdown complete")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected request body: %s", exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The settings are fixed for the lifetime of the app and exposed to handlers
    through ``app.state.settings``.
    """
    application = FastAPI(
        title="dirphoto",
        description="Preview and commit directory profile photos",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.settings = settings or get_settings()

    application.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]

    application.include_router(shell_router)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Run the server with the configured listen policy."""
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.listen_host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )

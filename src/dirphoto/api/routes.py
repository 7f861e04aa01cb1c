"""API route definitions."""

from __future__ import annotations

import base64
import functools
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse

from dirphoto.api.middleware import verify_basic_auth
from dirphoto.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ImageDataResponse,
    PreviewRequest,
    SubmitRequest,
    SubmitResponse,
    User,
)
from dirphoto.directory import DirectoryError
from dirphoto.imaging.errors import ImageProcessingError
from dirphoto.imaging.pipeline import process
from dirphoto.imaging.pool import PoolSaturatedError, ProcessingTimeoutError

if TYPE_CHECKING:
    from dirphoto.config import Settings
    from dirphoto.directory import DirectoryStore
    from dirphoto.imaging.encoder import EncodedImage
    from dirphoto.imaging.pool import ProcessingPool

logger = logging.getLogger(__name__)

JPEG_DATA_URI_PREFIX = "data:image/jpeg;base64,"
INDEX_HTML = Path(__file__).resolve().parent.parent / "static" / "index.html"

router = APIRouter(prefix="/api", dependencies=[Depends(verify_basic_auth)])
shell_router = APIRouter(dependencies=[Depends(verify_basic_auth)])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_processing_pool(request: Request) -> ProcessingPool:
    pool: ProcessingPool = request.app.state.processing_pool
    return pool


def _get_directory_store(request: Request) -> DirectoryStore:
    store: DirectoryStore = request.app.state.directory_store
    return store


def _to_data_uri(data: bytes) -> str:
    return JPEG_DATA_URI_PREFIX + base64.b64encode(data).decode("ascii")


async def _run_pipeline(request: Request, body: PreviewRequest, *, enforce_budget: bool, context: str) -> EncodedImage:
    """Run the image pipeline in the processing pool and map failures to HTTP errors."""
    settings = _get_settings(request)
    pool = _get_processing_pool(request)
    job = functools.partial(
        process,
        body.image_data,
        body.options.to_options(),
        enforce_budget,
        settings=settings.encoder_settings(),
        max_pixels=settings.max_image_pixels,
    )
    try:
        return await pool.run(job)
    except ImageProcessingError as exc:
        if exc.user_correctable:
            logger.info("Rejected image: %s", exc)
            raise HTTPException(status.HTTP_400_BAD_REQUEST, f"{context}{exc}") from exc
        logger.exception("Image pipeline failed")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"{context}internal encoder error") from exc
    except PoolSaturatedError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Server busy, try again shortly") from exc
    except ProcessingTimeoutError as exc:
        raise HTTPException(status.HTTP_504_GATEWAY_TIMEOUT, "Image processing timed out") from exc


@shell_router.get("/", include_in_schema=False)
async def index() -> FileResponse:
    """Serve the single-page operator interface."""
    return FileResponse(INDEX_HTML, media_type="text/html")


@router.get(
    "/users",
    response_model=list[User],
    responses={status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse}},
    summary="List directory identities",
)
async def list_users(request: Request) -> list[User]:
    """Return every identity that can receive a photo."""
    store = _get_directory_store(request)
    try:
        usernames = await store.list_users()
    except DirectoryError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
    return [User(username=name) for name in usernames]


@router.get(
    "/user-photo",
    response_model=ImageDataResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
    summary="Fetch an identity's current photo",
)
async def get_user_photo(request: Request, username: str = "") -> ImageDataResponse:
    """Return the stored photo as a data URI, or an empty string if there is none."""
    if not username:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username parameter required")

    store = _get_directory_store(request)
    try:
        photo = await store.get_photo(username)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    return ImageDataResponse(image_data=_to_data_uri(photo) if photo else "")


@router.post(
    "/preview",
    response_model=ImageDataResponse,
    responses=_ERROR_RESPONSES,
    summary="Preview a processed photo",
)
async def preview_image(request: Request, body: PreviewRequest) -> ImageDataResponse:
    """Process an image without the size budget and return it for display."""
    if not body.image_data:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Image data required")

    result = await _run_pipeline(request, body, enforce_budget=False, context="")
    return ImageDataResponse(image_data=_to_data_uri(result.data))


@router.post(
    "/submit",
    response_model=SubmitResponse,
    responses={**_ERROR_RESPONSES, status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse}},
    summary="Process a photo and store it on the identity",
)
async def submit_profile_picture(request: Request, body: SubmitRequest) -> SubmitResponse:
    """Process an image under the size budget and write it to the directory store."""
    if not body.username or not body.image_data:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Username and image data are required")

    result = await _run_pipeline(request, body, enforce_budget=True, context="Failed to process image: ")

    store = _get_directory_store(request)
    try:
        await store.set_photo(body.username, result.data)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except DirectoryError as exc:
        logger.error("Failed to store photo for %s: %s", body.username, exc)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"Failed to set directory photo: {exc}") from exc

    return SubmitResponse(message=f"Profile picture updated for {body.username}")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = _get_processing_pool(request)
    return HealthResponse(
        status="ok",
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )

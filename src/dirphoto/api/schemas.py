"""Pydantic request/response schemas for the dirphoto API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from dirphoto.imaging.pipeline import ProcessingOptions


class ProcessingOptionsModel(BaseModel):
    """Framing flags as sent by the browser."""

    crop: bool = False
    round: bool = Field(default=False, description="Apply a circular mask; implies crop")

    def to_options(self) -> ProcessingOptions:
        return ProcessingOptions(crop=self.crop, round=self.round)


class PreviewRequest(BaseModel):
    """Body of a preview request."""

    model_config = ConfigDict(populate_by_name=True)

    image_data: str = Field(default="", alias="imageData", description="Base64 image, data-URI header optional")
    options: ProcessingOptionsModel = ProcessingOptionsModel()


class SubmitRequest(PreviewRequest):
    """Body of a submit request: a preview request plus the target identity."""

    username: str = ""


class ImageDataResponse(BaseModel):
    """A browser-ready image, or an empty string when there is none."""

    model_config = ConfigDict(populate_by_name=True)

    image_data: str = Field(alias="imageData", description="data:image/jpeg;base64,... or empty")


class SubmitResponse(BaseModel):
    status: str = "success"
    message: str


class User(BaseModel):
    """A directory identity that can receive a photo."""

    username: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str

"""Schemas for the image generation proxy and image storage endpoints."""

from pydantic import Field, model_validator

from .base import CamelSchema


class GenerationResult(CamelSchema):
    """Images returned by the generation API."""

    images: list[str] = Field(default_factory=list)
    model: str


class HealthResponse(CamelSchema):
    """Service health and configuration status."""

    status: str
    has_api_key: bool


class ImageUploadResponse(CamelSchema):
    """Location of a stored image."""

    url: str
    filename: str


class SaveGeneratedImageRequest(CamelSchema):
    """Schema for persisting a generated image from a URL or inline data."""

    image_url: str | None = None
    base64: str | None = None
    chat_id: str = Field(..., min_length=1)
    message_index: int = Field(..., ge=0)
    version_index: int = Field(..., ge=0)
    image_index: int = Field(..., ge=0)

    @model_validator(mode="after")
    def require_source(self):
        if not self.image_url and not self.base64:
            raise ValueError("No image data provided")
        return self

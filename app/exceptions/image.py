# ruff: noqa: D107
"""Image store exceptions."""

from typing import Any

from .base import BaseAppException


class ImageNotFoundError(BaseAppException):
    """Raised when a stored image does not exist."""

    def __init__(self, image_type: str, key: str):
        super().__init__(
            message="Image not found",
            status_code=404,
            error_code="IMAGE_NOT_FOUND",
            details={"type": image_type, "filename": key},
        )


class InvalidImageError(BaseAppException):
    """Raised when image data, type or key is unusable."""

    def __init__(self, message: str = "Invalid image", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, error_code="INVALID_IMAGE", details=details)


class ImageDownloadError(BaseAppException):
    """Raised when a remote image cannot be fetched."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"Failed to download image: {reason}",
            status_code=502,
            error_code="IMAGE_DOWNLOAD_FAILED",
            details={"url": url},
        )

# ruff: noqa: D107
"""Image generation service exceptions."""

from typing import Any

from .base import BaseAppException


class GenerationError(BaseAppException):
    """Base exception for image generation errors."""

    def __init__(
        self,
        message: str = "Image generation failed",
        error_code: str = "GENERATION_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int = 502,
    ):
        super().__init__(message=message, status_code=status_code, error_code=error_code, details=details)


class GenerationUnavailableError(GenerationError):
    """Exception raised when the generation API is unavailable."""

    def __init__(
        self,
        message: str = "Image generation service is temporarily unavailable",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GENERATION_UNAVAILABLE", details, status_code=503)


class GenerationRequestError(GenerationError):
    """Exception raised when the generation API rejects a request."""

    def __init__(
        self,
        message: str = "Invalid request to image generation service",
        details: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        super().__init__(message, "GENERATION_INVALID_REQUEST", details, status_code=status_code)


class GenerationTimeoutError(GenerationError):
    """Exception raised when a generation request times out."""

    def __init__(
        self,
        message: str = "Image generation request timed out",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GENERATION_TIMEOUT", details, status_code=504)


class GenerationParsingError(GenerationError):
    """Exception raised when the generation response cannot be parsed."""

    def __init__(
        self,
        message: str = "Failed to parse image generation response",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GENERATION_PARSING_ERROR", details)


class GenerationConfigurationError(GenerationError):
    """Exception raised when the generation service is not configured."""

    def __init__(
        self,
        message: str = "API key not configured",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GENERATION_CONFIGURATION_ERROR", details, status_code=500)


class GenerationRateLimitError(GenerationError):
    """Exception raised when the generation API rate limit is hit."""

    def __init__(
        self,
        message: str = "Image generation rate limit exceeded",
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        if details is None:
            details = {}
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(message, "GENERATION_RATE_LIMITED", details, status_code=429)


# Errors worth another attempt
RETRYABLE_GENERATION_ERRORS = (
    GenerationUnavailableError,
    GenerationRateLimitError,
    GenerationTimeoutError,
)


def map_status_error(status_code: int, message: str, details: dict[str, Any] | None = None) -> GenerationError:
    """Map an HTTP status from the generation API to the matching exception."""
    if status_code == 429:
        return GenerationRateLimitError(message, details=details)
    if status_code >= 500:
        return GenerationUnavailableError(message, details)
    if status_code in (401, 403):
        return GenerationConfigurationError(message, details)
    return GenerationRequestError(message, details, status_code=status_code)

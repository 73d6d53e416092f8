# ruff: noqa: D107
"""Chat-related exceptions."""

from typing import Any

from .base import BaseAppException


class ChatNotFoundError(BaseAppException):
    """Raised when a chat is not found."""

    def __init__(self, chat_id: str):
        super().__init__(
            message=f"Chat {chat_id} not found",
            status_code=404,
            error_code="CHAT_NOT_FOUND",
            details={"chat_id": chat_id},
        )


class MessageNotFoundError(BaseAppException):
    """Raised when a message index does not exist in a chat."""

    def __init__(self, index: int):
        super().__init__(
            message=f"Message {index} not found",
            status_code=404,
            error_code="MESSAGE_NOT_FOUND",
            details={"index": index},
        )


class InvalidMessageOperationError(BaseAppException):
    """Raised when an operation does not apply to the addressed message."""

    def __init__(self, message: str = "Invalid message operation", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_MESSAGE_OPERATION",
            details=details,
        )


class InvalidEditStateError(BaseAppException):
    """Raised when an edit transition is requested from the wrong state."""

    def __init__(self, message: str = "Message is not being edited", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_EDIT_STATE",
            details=details,
        )


class EmptyPromptError(BaseAppException):
    """Raised when a prompt is empty after trimming."""

    def __init__(self, message: str = "Prompt is required"):
        super().__init__(message=message, status_code=422, error_code="EMPTY_PROMPT")


class ContextLimitExceededError(BaseAppException):
    """Raised when a generation request would carry too many images."""

    def __init__(self, count: int, limit: int):
        super().__init__(
            message=f"Too many images selected. Maximum is {limit} images.",
            status_code=422,
            error_code="CONTEXT_LIMIT_EXCEEDED",
            details={"count": count, "limit": limit},
        )
        self.count = count
        self.limit = limit

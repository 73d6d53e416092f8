"""
Unit tests for exception classes and status mapping.
"""

import pytest

from app.exceptions.base import BaseAppException, NotFoundError, PersistenceError
from app.exceptions.chat import (
    ChatNotFoundError,
    ContextLimitExceededError,
    EmptyPromptError,
    InvalidEditStateError,
)
from app.exceptions.generation import (
    GenerationConfigurationError,
    GenerationError,
    GenerationRateLimitError,
    GenerationRequestError,
    GenerationUnavailableError,
    map_status_error,
)


def test_base_exception_detail():
    exc = BaseAppException("boom", status_code=418, error_code="TEAPOT", details={"a": 1})

    assert exc.status_code == 418
    assert exc.detail == {"message": "boom", "error_code": "TEAPOT", "details": {"a": 1}}


def test_details_default_to_empty_dict():
    assert NotFoundError().detail["details"] == {}


@pytest.mark.parametrize(
    "exc,status_code,error_code",
    [
        (NotFoundError(), 404, "NOT_FOUND"),
        (PersistenceError(), 500, "PERSISTENCE_ERROR"),
        (InvalidEditStateError(), 409, "INVALID_EDIT_STATE"),
        (ChatNotFoundError("1"), 404, "CHAT_NOT_FOUND"),
        (EmptyPromptError(), 422, "EMPTY_PROMPT"),
        (ContextLimitExceededError(15, 14), 422, "CONTEXT_LIMIT_EXCEEDED"),
        (GenerationConfigurationError(), 500, "GENERATION_CONFIGURATION_ERROR"),
        (GenerationUnavailableError(), 503, "GENERATION_UNAVAILABLE"),
    ],
)
def test_status_and_codes(exc, status_code, error_code):
    assert exc.status_code == status_code
    assert exc.error_code == error_code


def test_rate_limit_carries_retry_after():
    assert GenerationRateLimitError(retry_after=30).details == {"retry_after": 30}


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (429, GenerationRateLimitError),
        (500, GenerationUnavailableError),
        (503, GenerationUnavailableError),
        (401, GenerationConfigurationError),
        (400, GenerationRequestError),
        (422, GenerationRequestError),
    ],
)
def test_map_status_error(status_code, expected):
    exc = map_status_error(status_code, "api says no")

    assert isinstance(exc, expected)
    assert isinstance(exc, GenerationError)
    assert exc.message == "api says no"


def test_request_error_keeps_api_status():
    assert map_status_error(422, "bad").status_code == 422

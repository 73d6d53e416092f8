"""Chat schemas for request/response serialization.

Chat documents keep the camelCase keys the browser client writes, so the
request models accept both ``imageContextOptions`` and
``image_context_options``. Message bodies inside a stored chat stay plain
dicts: they may still be in a legacy shape and are only normalized when the
chat domain touches them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from .base import CamelSchema


class MessageRole(str, Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"


class ContextOptions(CamelSchema):
    """Toggles selecting which history is resent with a generation request."""

    include_last_generated: bool = Field(default=True, description="Resend the last generated images")
    include_last_generated_all_versions: bool = Field(
        default=False, description="Resend every version of the last generated response"
    )
    include_previous_generated: bool = Field(
        default=False, description="Resend generated images older than the last response"
    )
    include_previous_generated_all_versions: bool = Field(
        default=False, description="Resend every version of the older responses"
    )
    include_first_user_images: bool = Field(
        default=False, description="Resend the images of the first user message"
    )
    include_all_user_images: bool = Field(
        default=False, description="Resend the images of every earlier user message"
    )

    @classmethod
    def resolve(cls, raw: ContextOptions | dict[str, Any] | None) -> ContextOptions:
        """Build options from a stored value, falling back to the defaults."""
        if raw is None:
            return cls()
        if isinstance(raw, cls):
            return raw
        return cls.model_validate(raw)

    def effective(self) -> ContextOptions:
        """Return a copy where each all-versions flag is off unless its parent is on."""
        return self.model_copy(
            update={
                "include_last_generated_all_versions": (
                    self.include_last_generated and self.include_last_generated_all_versions
                ),
                "include_previous_generated_all_versions": (
                    self.include_previous_generated and self.include_previous_generated_all_versions
                ),
            }
        )

    def to_document(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class ChatDocument(CamelSchema):
    """A whole chat as exchanged with the client."""

    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(default="New Chat", max_length=255)
    created_at: str | None = None
    messages: list[dict[str, Any]] = Field(default_factory=list)


class CreateChatRequest(CamelSchema):
    """Schema for creating an empty chat."""

    title: str | None = Field(None, max_length=255, description="Optional chat title")


class ReplaceChatRequest(CamelSchema):
    """Schema for replacing a stored chat document."""

    chat: ChatDocument


class SendMessageRequest(CamelSchema):
    """Schema for sending a new prompt from the compose box."""

    prompt: str = Field(..., max_length=10000, description="Prompt text")
    model: str | None = Field(None, description="Generation model, defaults to the configured one")
    num_images: int | None = Field(None, ge=1, le=4, description="Images to generate")
    input_images: list[str] = Field(default_factory=list, description="Image references attached to the prompt")
    image_context_options: ContextOptions | None = None


class RegenerateRequest(CamelSchema):
    """Schema for adding more images to the current version of a response."""

    model: str | None = None
    num_images: int | None = Field(None, ge=1, le=4)


class SelectVersionRequest(CamelSchema):
    """Schema for moving the version cursor of a response."""

    delta: int = Field(..., description="Steps to move, usually -1 or 1")


class EditMessageRequest(CamelSchema):
    """Schema for saving an edited prompt."""

    prompt: str = Field(..., max_length=10000)
    image_context_options: ContextOptions | None = None
    model: str | None = None
    num_images: int | None = Field(None, ge=1, le=4)


class AddInputImageRequest(CamelSchema):
    """Schema for attaching an image reference to an existing user message."""

    url: str = Field(..., min_length=1)


class ContextCountRequest(CamelSchema):
    """Schema for live image-count feedback."""

    reference_index: int | None = Field(
        None, ge=0, description="User message being edited; omit for the compose box"
    )
    staged_count: int = Field(default=0, ge=0, description="Images attached but not yet sent")
    options: ContextOptions | None = None


class ContextCountResponse(CamelSchema):
    """Per-category image counts and the effective total."""

    own: int
    staged: int
    last_generated: int
    last_generated_all_versions: int
    previous_generated: int
    previous_generated_all_versions: int
    first_user: int
    all_user: int
    total: int
    limit: int
    over_limit: bool


class VersionSelectionResponse(CamelSchema):
    """Result of moving a version cursor."""

    moved: bool
    current_version: int
    total_versions: int
    images: list[str]


class ComposeDraft(CamelSchema):
    """A prompt copied into a fresh chat, ready to be sent."""

    prompt: str
    model: str | None = None
    num_images: int | None = None
    input_images: list[str] = Field(default_factory=list)

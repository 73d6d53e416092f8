"""Edit state machine for user prompts.

``Viewing -> Editing -> Saved | Cancelled``. Saving validates the new prompt
and its image count, writes it onto the message and, when the message already
has a response, opens a new version on that response so earlier versions stay
reachable. Generating into the new branch is the chat service's job.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from app.exceptions.chat import EmptyPromptError, InvalidEditStateError, InvalidMessageOperationError
from app.schemas.chat import ContextOptions

from .context import count_context_images, ensure_within_limit, stored_options
from .versions import Message, is_assistant_message, is_successful_response, is_user_message, start_new_version


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    SAVED = "saved"
    CANCELLED = "cancelled"


class FollowerKind(str, Enum):
    """What comes right after the edited message."""

    RESPONSE = "response"
    FAILED_RESPONSE = "failed_response"
    NONE = "none"


@dataclass
class EditOutcome:
    prompt: str
    options: ContextOptions
    follower: FollowerKind
    follower_index: int
    version_index: int | None = None


@dataclass
class EditSession:
    messages: Sequence[Message]
    index: int
    state: EditState = EditState.VIEWING

    def __post_init__(self):
        if not 0 <= self.index < len(self.messages) or not is_user_message(self.messages[self.index]):
            raise InvalidMessageOperationError(
                "Only user messages can be edited", details={"index": self.index}
            )

    @property
    def message(self) -> Message:
        return self.messages[self.index]

    @classmethod
    def resume(cls, messages: Sequence[Message], index: int) -> "EditSession":
        """Pick up the state recorded on the message."""
        session = cls(messages, index)
        if session.message.get("isEditing"):
            session.state = EditState.EDITING
        return session

    def _require(self, state: EditState) -> None:
        if self.state is not state:
            raise InvalidEditStateError(
                f"Cannot do that while the message is {self.state.value}",
                details={"index": self.index, "state": self.state.value},
            )

    def begin(self) -> dict:
        """Enter editing; returns the buffer the editor starts from."""
        self._require(EditState.VIEWING)
        self.message["isEditing"] = True
        self.state = EditState.EDITING
        return {
            "prompt": self.message.get("prompt", ""),
            "imageContextOptions": stored_options(self.messages, self.index).to_document(),
        }

    def cancel(self) -> None:
        self._require(EditState.EDITING)
        self.message["isEditing"] = False
        self.state = EditState.CANCELLED

    def save(self, prompt: str, options: ContextOptions | dict | None = None) -> EditOutcome:
        """Validate and apply the edit.

        Raises:
            InvalidEditStateError: If the message is not being edited.
            EmptyPromptError: If the prompt is blank.
            ContextLimitExceededError: If the edited request would carry too many images.
        """
        self._require(EditState.EDITING)
        prompt = (prompt or "").strip()
        if not prompt:
            raise EmptyPromptError()

        options = ContextOptions.resolve(options) if options is not None else stored_options(
            self.messages, self.index
        )
        ensure_within_limit(count_context_images(self.messages, self.index, 0, options))

        self.message["prompt"] = prompt
        self.message["imageContextOptions"] = options.to_document()
        self.message["isEditing"] = False

        follower_index = self.index + 1
        outcome = EditOutcome(prompt=prompt, options=options, follower=FollowerKind.NONE, follower_index=follower_index)
        if follower_index < len(self.messages):
            follower = self.messages[follower_index]
            if is_successful_response(follower):
                outcome.follower = FollowerKind.RESPONSE
                outcome.version_index = start_new_version(follower)
            elif is_assistant_message(follower):
                outcome.follower = FollowerKind.FAILED_RESPONSE

        self.state = EditState.SAVED
        return outcome

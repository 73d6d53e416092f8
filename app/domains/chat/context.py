"""Conversation context assembly.

Given a chat transcript and a user message, decides which prompts and which
earlier images are resent to the generation API. The same selection routine
backs both the outbound request (``build_context``) and the live counters
(``count_context_images`` / ``context_breakdown``), so the number shown
before sending is always the number that gets sent.

Image order is fixed: the message's own images, then the last generated
response, then older generated responses, then the first user message's
images, then every earlier user message's images. Nothing is de-duplicated.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from app.exceptions.chat import ContextLimitExceededError
from app.schemas.chat import ContextOptions

from .versions import (
    Message,
    all_version_images,
    current_images,
    is_successful_response,
    is_user_message,
    normalize,
    normalized_view,
)

MAX_CONTEXT_IMAGES = 14


@dataclass
class GenerationContext:
    prompt: str
    images: list[str]


@dataclass
class ContextSelection:
    """Images picked for one request, grouped by the option that picked them."""

    own: list[str] = field(default_factory=list)
    last_generated: list[str] = field(default_factory=list)
    previous_generated: list[str] = field(default_factory=list)
    first_user: list[str] = field(default_factory=list)
    all_user: list[str] = field(default_factory=list)

    @property
    def images(self) -> list[str]:
        return [
            *self.own,
            *self.last_generated,
            *self.previous_generated,
            *self.first_user,
            *self.all_user,
        ]


@dataclass
class ContextBreakdown:
    own: int
    staged: int
    last_generated: int
    last_generated_all_versions: int
    previous_generated: int
    previous_generated_all_versions: int
    first_user: int
    all_user: int
    total: int
    limit: int = MAX_CONTEXT_IMAGES

    @property
    def over_limit(self) -> bool:
        return self.total > self.limit


def find_last_generated(messages: Sequence[Message], before: int) -> int | None:
    """Index of the nearest successful assistant message strictly before ``before``."""
    for i in range(min(before, len(messages)) - 1, -1, -1):
        if is_successful_response(messages[i]):
            return i
    return None


def stored_options(messages: Sequence[Message], index: int) -> ContextOptions:
    """Options saved on the user message at ``index``, or the defaults."""
    if 0 <= index < len(messages) and is_user_message(messages[index]):
        return ContextOptions.resolve(messages[index].get("imageContextOptions"))
    return ContextOptions()


def _response_images(message: Message, all_versions: bool, touch: bool) -> list[str]:
    if touch:
        normalize(message)
    else:
        message = normalized_view(message)
    return all_version_images(message) if all_versions else current_images(message)


def select_context_images(
    messages: Sequence[Message],
    index: int,
    options: ContextOptions | dict | None = None,
    *,
    touch: bool = True,
) -> ContextSelection:
    """Pick the context images for the user message at ``index``.

    ``index`` may equal ``len(messages)`` for a prompt that is still in the
    compose box; it then has no images of its own. With ``touch`` the
    assistant messages walked over are normalized in place, otherwise the
    transcript is read without being modified.
    """
    if options is None:
        options = stored_options(messages, index)
    options = ContextOptions.resolve(options).effective()

    selection = ContextSelection()
    if index < len(messages) and is_user_message(messages[index]):
        selection.own = list(messages[index].get("inputImages") or [])

    last_index = find_last_generated(messages, index)
    history = messages[:index]

    if options.include_last_generated and last_index is not None:
        selection.last_generated = _response_images(
            messages[last_index], options.include_last_generated_all_versions, touch
        )

    if options.include_previous_generated:
        for i, message in enumerate(history):
            if i != last_index and is_successful_response(message):
                selection.previous_generated.extend(
                    _response_images(message, options.include_previous_generated_all_versions, touch)
                )

    if options.include_first_user_images:
        for message in history:
            if is_user_message(message):
                selection.first_user = list(message.get("inputImages") or [])
                break

    if options.include_all_user_images:
        for message in history:
            if is_user_message(message):
                selection.all_user.extend(message.get("inputImages") or [])

    return selection


def combine_prompts(messages: Sequence[Message], index: int) -> str:
    prompts = [m.get("prompt", "") for m in messages[: index + 1] if is_user_message(m)]
    if len(prompts) == 1:
        return prompts[0]
    return "\n\n".join(f"[Turn {turn}]: {prompt}" for turn, prompt in enumerate(prompts, start=1))


def build_context(
    messages: Sequence[Message],
    index: int,
    options: ContextOptions | dict | None = None,
) -> GenerationContext:
    """Assemble the prompt and images sent when answering the user message at ``index``.

    Args:
        messages: The chat transcript.
        index: Position of the user message being answered or re-edited.
        options: Explicit options; defaults to those stored on the message.

    Returns:
        GenerationContext with the combined prompt and ordered image list.

    Raises:
        ValueError: If ``index`` does not address a user message.
    """
    if not 0 <= index < len(messages) or not is_user_message(messages[index]):
        raise ValueError(f"Message {index} is not a user message")

    selection = select_context_images(messages, index, options)
    return GenerationContext(prompt=combine_prompts(messages, index), images=selection.images)


def count_context_images(
    messages: Sequence[Message],
    reference_index: int,
    staged_count: int = 0,
    options: ContextOptions | dict | None = None,
) -> int:
    """Images a request at ``reference_index`` would carry, plus ``staged_count``.

    Reads the transcript without modifying it.
    """
    selection = select_context_images(messages, reference_index, options, touch=False)
    return len(selection.images) + staged_count


def context_breakdown(
    messages: Sequence[Message],
    reference_index: int,
    staged_count: int = 0,
    options: ContextOptions | dict | None = None,
) -> ContextBreakdown:
    """Per-option counts for the context panel, with the total for ``options``."""
    everything_current = ContextOptions(
        include_last_generated=True,
        include_previous_generated=True,
        include_first_user_images=True,
        include_all_user_images=True,
    )
    everything_all = everything_current.model_copy(
        update={
            "include_last_generated_all_versions": True,
            "include_previous_generated_all_versions": True,
        }
    )
    current = select_context_images(messages, reference_index, everything_current, touch=False)
    every_version = select_context_images(messages, reference_index, everything_all, touch=False)

    return ContextBreakdown(
        own=len(current.own),
        staged=staged_count,
        last_generated=len(current.last_generated),
        last_generated_all_versions=len(every_version.last_generated),
        previous_generated=len(current.previous_generated),
        previous_generated_all_versions=len(every_version.previous_generated),
        first_user=len(current.first_user),
        all_user=len(current.all_user),
        total=count_context_images(messages, reference_index, staged_count, options),
    )


def ensure_within_limit(total: int, limit: int = MAX_CONTEXT_IMAGES) -> None:
    if total > limit:
        raise ContextLimitExceededError(count=total, limit=limit)

"""Chat service layer: transcript operations and image generation."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.exceptions.base import NotFoundError
from app.exceptions.chat import EmptyPromptError, InvalidMessageOperationError, MessageNotFoundError
from app.exceptions.generation import GenerationError
from app.exceptions.image import ImageDownloadError, InvalidImageError
from app.schemas.chat import (
    ChatDocument,
    ComposeDraft,
    ContextCountRequest,
    ContextCountResponse,
    ContextOptions,
    EditMessageRequest,
    MessageRole,
    RegenerateRequest,
    SendMessageRequest,
    VersionSelectionResponse,
)
from app.services.image_generation import ImageGenerationClient
from app.services.image_store import ImageStore
from app.shared.image_refs import ImageRefKind, classify, decode_data_uri
from app.shared.pagination import PaginationParams
from models.chat import Chat

from .context import build_context, context_breakdown, count_context_images, ensure_within_limit, stored_options
from .editing import EditSession, FollowerKind
from .repository import DEFAULT_TITLE, ChatRepository
from .versions import (
    Message,
    append_images_to_current_version,
    current_images,
    error_response,
    is_assistant_message,
    is_successful_response,
    is_user_message,
    new_response,
    normalize,
    select_version,
)

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


def now_timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def title_from_prompt(prompt: str) -> str:
    return prompt[:TITLE_LENGTH] + ("..." if len(prompt) > TITLE_LENGTH else "")


class ChatService:
    """Service class for chat transcripts and their generated images."""

    def __init__(
        self,
        db: AsyncSession,
        image_store: ImageStore | None = None,
        generator: ImageGenerationClient | None = None,
    ):
        self.repository = ChatRepository(db)
        self.image_store = image_store or ImageStore()
        self.generator = generator or ImageGenerationClient(image_store=self.image_store)

    # ----- chats -----

    async def list_chats(self, pagination: PaginationParams | None = None) -> dict[str, Any]:
        return await self.repository.list(pagination)

    async def create_chat(self, title: str | None = None) -> dict[str, Any]:
        chat = await self.repository.create(title=title)
        return chat.to_document()

    async def get_chat(self, chat_id: str) -> dict[str, Any]:
        chat = await self.repository.get(chat_id)
        return chat.to_document()

    async def replace_chat(self, chat_id: str, document: ChatDocument) -> dict[str, Any]:
        """Store a whole chat document as sent by the client."""
        if document.id != chat_id:
            raise InvalidMessageOperationError(
                "Chat id in the body does not match the URL", details={"chat_id": chat_id, "body_id": document.id}
            )
        chat = await self.repository.replace(chat_id, document.title, document.messages)
        return chat.to_document()

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat together with every image stored for it."""
        await self.repository.delete(chat_id)
        await self.image_store.delete_for_chat(chat_id)

    # ----- helpers -----

    @staticmethod
    def _message(chat: Chat, index: int) -> Message:
        if not 0 <= index < len(chat.messages):
            raise MessageNotFoundError(index)
        return chat.messages[index]

    def _user_message(self, chat: Chat, index: int) -> Message:
        message = self._message(chat, index)
        if not is_user_message(message):
            raise InvalidMessageOperationError("Message is not a user message", details={"index": index})
        return message

    def _response_message(self, chat: Chat, index: int) -> Message:
        message = self._message(chat, index)
        if not is_successful_response(message):
            raise InvalidMessageOperationError(
                "Message is not a successful assistant response", details={"index": index}
            )
        return message

    @staticmethod
    def _generation_settings(message: Message, model: str | None, num_images: int | None) -> tuple[str, int]:
        return (
            model or message.get("model") or settings.default_model,
            num_images or message.get("numImages") or settings.default_num_images,
        )

    async def _store_inline_inputs(self, chat_id: str, message_index: int, refs: list[str]) -> list[str]:
        """Upload inline images attached to a new prompt; other references are kept as-is."""
        stored = []
        for image_index, ref in enumerate(refs):
            if classify(ref) is ImageRefKind.INLINE:
                try:
                    mime_type, data = decode_data_uri(ref)
                except ValueError as e:
                    raise InvalidImageError(str(e), details={"image_index": image_index}) from e
                ref, _ = await self.image_store.save_upload(data, mime_type, chat_id, message_index, image_index)
            stored.append(ref)
        return stored

    async def _persist_generated(
        self, chat_id: str, message_index: int, version_index: int, start: int, images: list[str]
    ) -> list[str]:
        """Save produced images under this server, keeping the API reference if that fails."""
        persisted = []
        for offset, image in enumerate(images):
            kind = classify(image)
            if kind not in (ImageRefKind.INLINE, ImageRefKind.EXTERNAL):
                persisted.append(image)
                continue
            try:
                ref, _ = await self.image_store.save_generated(
                    chat_id,
                    message_index,
                    version_index,
                    start + offset,
                    base64_data=image if kind is ImageRefKind.INLINE else None,
                    image_url=image if kind is ImageRefKind.EXTERNAL else None,
                )
            except (ImageDownloadError, InvalidImageError) as e:
                logger.warning(f"Keeping unsaved generated image for chat {chat_id}: {e.message}")
                ref = image
            persisted.append(ref)
        return persisted

    @staticmethod
    def _is_failure(messages: list[Message], position: int) -> bool:
        return 0 <= position < len(messages) and is_assistant_message(messages[position]) and bool(
            messages[position].get("error")
        )

    def _record_failure(self, messages: list[Message], error: str) -> None:
        """Append an error response to the transcript, reusing one that already ends it."""
        if self._is_failure(messages, len(messages) - 1):
            messages[-1]["error"] = error
            messages[-1]["timestamp"] = now_timestamp()
        else:
            messages.append(error_response(error, now_timestamp()))

    def _clear_failure(self, messages: list[Message], position: int) -> None:
        """Drop the error left at ``position`` by an earlier attempt that has now succeeded."""
        if self._is_failure(messages, position):
            del messages[position]

    async def _generate(self, chat: Chat, user_index: int, model: str, num_images: int) -> list[str]:
        context = build_context(chat.messages, user_index)
        logger.info(f"Chat {chat.id}: generating for message {user_index} with {len(context.images)} context image(s)")
        return await self.generator.generate(context.prompt, context.images, model=model, num_images=num_images)

    # ----- messages -----

    async def send_message(self, chat_id: str, request: SendMessageRequest) -> dict[str, Any]:
        """Append a prompt and its generated response.

        Validation failures raise before anything is stored. A failed
        generation is recorded as an error response instead of raising.
        """
        prompt = request.prompt.strip()
        if not prompt:
            raise EmptyPromptError()

        chat = await self.repository.get(chat_id)
        messages = chat.messages
        options = request.image_context_options or ContextOptions()
        ensure_within_limit(count_context_images(messages, len(messages), len(request.input_images), options))

        user_index = len(messages)
        model, num_images = self._generation_settings({}, request.model, request.num_images)
        input_images = await self._store_inline_inputs(chat.id, user_index, request.input_images)
        messages.append(
            {
                "role": MessageRole.USER.value,
                "prompt": prompt,
                "model": model,
                "numImages": num_images,
                "inputImages": input_images,
                "imageContextOptions": options.to_document(),
                "timestamp": now_timestamp(),
            }
        )
        if sum(1 for m in messages if is_user_message(m)) == 1:
            chat.title = title_from_prompt(prompt)
        chat = await self.repository.update(chat)

        try:
            images = await self._generate(chat, user_index, model, num_images)
            images = await self._persist_generated(chat.id, user_index + 1, 0, 0, images)
            chat.messages.insert(user_index + 1, new_response(images, now_timestamp()))
        except GenerationError as e:
            logger.warning(f"Chat {chat.id}: generation failed: {e.message}")
            self._record_failure(chat.messages, e.message)

        chat = await self.repository.update(chat)
        return chat.to_document()

    async def regenerate(self, chat_id: str, index: int, request: RegenerateRequest) -> dict[str, Any]:
        """Generate more images into the displayed version of the response at ``index``."""
        chat = await self.repository.get(chat_id)
        response = self._response_message(chat, index)
        if index == 0 or not is_user_message(chat.messages[index - 1]):
            raise InvalidMessageOperationError("Response has no prompt before it", details={"index": index})

        model, num_images = self._generation_settings(chat.messages[index - 1], request.model, request.num_images)
        try:
            images = await self._generate(chat, index - 1, model, num_images)
            normalize(response)
            images = await self._persist_generated(
                chat.id, index, response["currentVersion"], len(current_images(response)), images
            )
            append_images_to_current_version(response, images)
            self._clear_failure(chat.messages, index + 1)
        except GenerationError as e:
            logger.warning(f"Chat {chat.id}: regeneration failed: {e.message}")
            self._record_failure(chat.messages, e.message)

        chat = await self.repository.update(chat)
        return chat.to_document()

    async def change_version(self, chat_id: str, index: int, delta: int) -> VersionSelectionResponse:
        chat = await self.repository.get(chat_id)
        response = self._response_message(chat, index)
        moved = select_version(response, delta)
        chat = await self.repository.update(chat)
        response = chat.messages[index]
        return VersionSelectionResponse(
            moved=moved,
            current_version=response["currentVersion"],
            total_versions=len(response["versions"]),
            images=current_images(response),
        )

    async def begin_edit(self, chat_id: str, index: int) -> dict[str, Any]:
        chat = await self.repository.get(chat_id)
        buffer = EditSession.resume(chat.messages, index).begin()
        await self.repository.update(chat)
        return buffer

    async def cancel_edit(self, chat_id: str, index: int) -> dict[str, Any]:
        chat = await self.repository.get(chat_id)
        EditSession.resume(chat.messages, index).cancel()
        chat = await self.repository.update(chat)
        return chat.to_document()

    async def save_edit(self, chat_id: str, index: int, request: EditMessageRequest) -> dict[str, Any]:
        """Apply an edited prompt and regenerate its response into a new branch."""
        chat = await self.repository.get(chat_id)
        outcome = EditSession.resume(chat.messages, index).save(request.prompt, request.image_context_options)
        chat = await self.repository.update(chat)

        model, num_images = self._generation_settings(chat.messages[index], request.model, request.num_images)
        response_index = outcome.follower_index
        try:
            images = await self._generate(chat, index, model, num_images)
            if outcome.follower is FollowerKind.RESPONSE:
                response = chat.messages[response_index]
                images = await self._persist_generated(
                    chat.id, response_index, response["currentVersion"], 0, images
                )
                append_images_to_current_version(response, images)
                self._clear_failure(chat.messages, response_index + 1)
            else:
                images = await self._persist_generated(chat.id, response_index, 0, 0, images)
                fresh = new_response(images, now_timestamp())
                if outcome.follower is FollowerKind.FAILED_RESPONSE:
                    chat.messages[response_index] = fresh
                else:
                    chat.messages.insert(response_index, fresh)
        except GenerationError as e:
            logger.warning(f"Chat {chat.id}: generation after edit failed: {e.message}")
            if outcome.follower is FollowerKind.RESPONSE:
                self._record_failure(chat.messages, e.message)
            elif outcome.follower is FollowerKind.FAILED_RESPONSE:
                chat.messages[response_index].update(error=e.message, timestamp=now_timestamp())
            else:
                chat.messages.insert(response_index, error_response(e.message, now_timestamp()))

        chat = await self.repository.update(chat)
        return chat.to_document()

    async def add_input_image(self, chat_id: str, index: int, ref: str) -> dict[str, Any]:
        chat = await self.repository.get(chat_id)
        message = self._user_message(chat, index)
        if classify(ref) is ImageRefKind.UNKNOWN:
            raise InvalidImageError("Unsupported image reference", details={"url": ref[:100]})
        message["inputImages"] = [*(message.get("inputImages") or []), ref]
        chat = await self.repository.update(chat)
        return chat.to_document()

    async def remove_input_image(self, chat_id: str, index: int, image_index: int) -> dict[str, Any]:
        chat = await self.repository.get(chat_id)
        message = self._user_message(chat, index)
        images = list(message.get("inputImages") or [])
        if not 0 <= image_index < len(images):
            raise NotFoundError("Image not found", details={"index": index, "image_index": image_index})
        images.pop(image_index)
        message["inputImages"] = images
        chat = await self.repository.update(chat)
        return chat.to_document()

    async def count_context(self, chat_id: str, request: ContextCountRequest) -> ContextCountResponse:
        """Live image counts for the compose box or a message being edited."""
        chat = await self.repository.get(chat_id)
        if request.reference_index is None:
            reference = len(chat.messages)
        else:
            reference = request.reference_index
            self._user_message(chat, reference)

        options = request.options or stored_options(chat.messages, reference)
        breakdown = context_breakdown(chat.messages, reference, request.staged_count, options)
        return ContextCountResponse(
            own=breakdown.own,
            staged=breakdown.staged,
            last_generated=breakdown.last_generated,
            last_generated_all_versions=breakdown.last_generated_all_versions,
            previous_generated=breakdown.previous_generated,
            previous_generated_all_versions=breakdown.previous_generated_all_versions,
            first_user=breakdown.first_user,
            all_user=breakdown.all_user,
            total=breakdown.total,
            limit=breakdown.limit,
            over_limit=breakdown.over_limit,
        )

    async def copy_to_new_chat(self, chat_id: str, index: int) -> dict[str, Any]:
        """Open a fresh chat with a prompt pre-filled from an earlier message."""
        source = await self.repository.get(chat_id)
        message = self._user_message(source, index)
        chat = await self.repository.create(title=DEFAULT_TITLE)
        draft = ComposeDraft(
            prompt=message.get("prompt", ""),
            model=message.get("model"),
            num_images=message.get("numImages"),
            input_images=list(message.get("inputImages") or []),
        )
        return {"chat": chat.to_document(), "draft": draft.model_dump(by_alias=True)}

"""Chat API controller with FastAPI endpoints."""

import logging

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status

from app.core.dependencies import get_chat_service
from app.domains.chat.service import ChatService
from app.schemas.base import ResponseSchema
from app.schemas.chat import (
    AddInputImageRequest,
    ContextCountRequest,
    CreateChatRequest,
    EditMessageRequest,
    RegenerateRequest,
    ReplaceChatRequest,
    SelectVersionRequest,
    SendMessageRequest,
)
from app.shared.pagination import PaginationParams

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chats",
    tags=["chats"],
)


@router.get("", response_model=ResponseSchema)
async def list_chats(
    _request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Page size"),
    service: ChatService = Depends(get_chat_service),
):
    """List chats, most recently updated first."""
    result = await service.list_chats(PaginationParams(page=page, size=size))
    return ResponseSchema(status="success", message="Chats retrieved successfully", data=result)


@router.post("", response_model=ResponseSchema, status_code=status.HTTP_201_CREATED)
async def create_chat(
    _request: Request,
    chat_data: CreateChatRequest | None = Body(None),
    service: ChatService = Depends(get_chat_service),
):
    """Create an empty chat."""
    chat = await service.create_chat(title=chat_data.title if chat_data else None)
    return ResponseSchema(status="success", message="Chat created successfully", data=chat)


@router.get("/{chat_id}", response_model=ResponseSchema)
async def get_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    service: ChatService = Depends(get_chat_service),
):
    chat = await service.get_chat(chat_id)
    return ResponseSchema(status="success", message="Chat retrieved successfully", data=chat)


@router.put("/{chat_id}", response_model=ResponseSchema)
async def replace_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    chat_data: ReplaceChatRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    """Store a whole chat document."""
    chat = await service.replace_chat(chat_id, chat_data.chat)
    return ResponseSchema(status="success", message="Chat saved successfully", data=chat)


@router.delete("/{chat_id}", response_model=ResponseSchema)
async def delete_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    service: ChatService = Depends(get_chat_service),
):
    """Delete a chat and its stored images."""
    await service.delete_chat(chat_id)
    return ResponseSchema(status="success", message="Chat deleted successfully", data={"id": chat_id})


@router.post("/{chat_id}/messages", response_model=ResponseSchema, status_code=status.HTTP_201_CREATED)
async def send_message(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    message_data: SendMessageRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    """Send a prompt and generate its response.

    A failed generation is stored in the chat as an error response, so this
    endpoint still answers 201 in that case.
    """
    chat = await service.send_message(chat_id, message_data)
    return ResponseSchema(status="success", message="Message sent successfully", data=chat)


@router.put("/{chat_id}/messages/{index}", response_model=ResponseSchema)
async def save_edit(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    edit_data: EditMessageRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    """Save an edited prompt and regenerate into a new version."""
    chat = await service.save_edit(chat_id, index, edit_data)
    return ResponseSchema(status="success", message="Message updated successfully", data=chat)


@router.post("/{chat_id}/messages/{index}/edit", response_model=ResponseSchema)
async def begin_edit(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    service: ChatService = Depends(get_chat_service),
):
    buffer = await service.begin_edit(chat_id, index)
    return ResponseSchema(status="success", message="Editing started", data=buffer)


@router.delete("/{chat_id}/messages/{index}/edit", response_model=ResponseSchema)
async def cancel_edit(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    service: ChatService = Depends(get_chat_service),
):
    chat = await service.cancel_edit(chat_id, index)
    return ResponseSchema(status="success", message="Editing cancelled", data=chat)


@router.post("/{chat_id}/messages/{index}/regenerate", response_model=ResponseSchema)
async def regenerate(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the assistant message"),
    regenerate_data: RegenerateRequest | None = Body(None),
    service: ChatService = Depends(get_chat_service),
):
    """Add more images to the displayed version of a response."""
    chat = await service.regenerate(chat_id, index, regenerate_data or RegenerateRequest())
    return ResponseSchema(status="success", message="Images regenerated", data=chat)


@router.post("/{chat_id}/messages/{index}/versions", response_model=ResponseSchema)
async def change_version(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the assistant message"),
    version_data: SelectVersionRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.change_version(chat_id, index, version_data.delta)
    return ResponseSchema(
        status="success",
        message="Version changed" if result.moved else "Version unchanged",
        data=result.model_dump(by_alias=True),
    )


@router.post("/{chat_id}/messages/{index}/images", response_model=ResponseSchema)
async def add_input_image(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    image_data: AddInputImageRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    chat = await service.add_input_image(chat_id, index, image_data.url)
    return ResponseSchema(status="success", message="Image added", data=chat)


@router.delete("/{chat_id}/messages/{index}/images/{image_index}", response_model=ResponseSchema)
async def remove_input_image(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    image_index: int = Path(..., ge=0, description="Index of the image within the message"),
    service: ChatService = Depends(get_chat_service),
):
    chat = await service.remove_input_image(chat_id, index, image_index)
    return ResponseSchema(status="success", message="Image removed", data=chat)


@router.post("/{chat_id}/messages/{index}/copy", response_model=ResponseSchema, status_code=status.HTTP_201_CREATED)
async def copy_to_new_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    index: int = Path(..., ge=0, description="Index of the user message"),
    service: ChatService = Depends(get_chat_service),
):
    """Start a new chat with the compose box pre-filled from a message."""
    result = await service.copy_to_new_chat(chat_id, index)
    return ResponseSchema(status="success", message="Chat created from message", data=result)


@router.post("/{chat_id}/context/count", response_model=ResponseSchema)
async def count_context(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    count_data: ContextCountRequest | None = Body(None),
    service: ChatService = Depends(get_chat_service),
):
    """Image counts for the context toggles and the total that would be sent."""
    result = await service.count_context(chat_id, count_data or ContextCountRequest())
    return ResponseSchema(status="success", message="Context counted", data=result.model_dump(by_alias=True))

# app/core/dependencies.py
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.domains.chat.service import ChatService
from app.services.image_generation import ImageGenerationClient
from app.services.image_store import ImageStore


@lru_cache
def get_image_store() -> ImageStore:
    """Process-wide image store rooted at the configured data directory."""
    return ImageStore()


def get_generation_client(image_store: ImageStore = Depends(get_image_store)) -> ImageGenerationClient:
    return ImageGenerationClient(image_store=image_store)


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    generator: ImageGenerationClient = Depends(get_generation_client),
) -> ChatService:
    return ChatService(db, image_store=image_store, generator=generator)


__all__ = ["get_db", "get_image_store", "get_generation_client", "get_chat_service"]

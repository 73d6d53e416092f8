"""Chat persistence on top of the ``chats`` table."""

import logging
import time
from datetime import datetime
from typing import Any

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.attributes import flag_modified

from app.exceptions.base import PersistenceError
from app.exceptions.chat import ChatNotFoundError
from app.shared.pagination import PaginationParams, paginate
from models.chat import Chat

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


def _summary(chat: Chat) -> dict[str, Any]:
    document = chat.to_document()
    document["messageCount"] = len(document.pop("messages"))
    return document


class ChatRepository:
    """Stores chat documents; the transcript is kept as opaque JSON."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _next_id(self) -> str:
        candidate = int(time.time() * 1000)
        while await self.db.get(Chat, str(candidate)) is not None:
            candidate += 1
        return str(candidate)

    async def _commit(self, chat: Chat, action: str) -> Chat:
        try:
            await self.db.commit()
            await self.db.refresh(chat)
            return chat
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action} chat {chat.id}: {str(e)}")
            raise PersistenceError(f"Failed to {action} chat", details={"chat_id": chat.id}) from e

    async def create(
        self,
        title: str | None = None,
        messages: list[dict] | None = None,
        chat_id: str | None = None,
    ) -> Chat:
        """Insert a chat; the id defaults to the current time in epoch milliseconds."""
        chat = Chat(
            id=chat_id or await self._next_id(),
            title=title or DEFAULT_TITLE,
            messages=messages if messages is not None else [],
        )
        self.db.add(chat)
        chat = await self._commit(chat, "create")
        logger.info(f"Created chat {chat.id}")
        return chat

    async def get(self, chat_id: str) -> Chat:
        """Fetch a chat or raise ``ChatNotFoundError``."""
        try:
            chat = await self.db.get(Chat, chat_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load chat {chat_id}: {str(e)}")
            raise PersistenceError("Failed to load chat", details={"chat_id": chat_id}) from e
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    async def exists(self, chat_id: str) -> bool:
        return await self.db.get(Chat, chat_id) is not None

    async def update(self, chat: Chat) -> Chat:
        """Persist changes made to ``chat.messages`` or ``chat.title``.

        The messages column is plain JSON, so in-place edits of the list are
        flagged explicitly.
        """
        flag_modified(chat, "messages")
        chat.updated_at = datetime.utcnow()
        return await self._commit(chat, "update")

    async def replace(self, chat_id: str, title: str, messages: list[dict]) -> Chat:
        """Overwrite a chat document, creating it when it does not exist yet."""
        chat = await self.db.get(Chat, chat_id)
        if chat is None:
            return await self.create(title=title, messages=messages, chat_id=chat_id)
        chat.title = title or DEFAULT_TITLE
        chat.messages = messages
        return await self.update(chat)

    async def list(self, pagination: PaginationParams | None = None) -> dict[str, Any]:
        """Chat summaries, most recently updated first."""
        stmt = select(Chat).order_by(desc(Chat.updated_at), desc(Chat.id))
        try:
            return await paginate(self.db, stmt, pagination or PaginationParams(), transform=_summary)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list chats: {str(e)}")
            raise PersistenceError("Failed to list chats") from e

    async def delete(self, chat_id: str) -> None:
        chat = await self.get(chat_id)
        try:
            await self.db.delete(chat)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete chat {chat_id}: {str(e)}")
            raise PersistenceError("Failed to delete chat", details={"chat_id": chat_id}) from e
        logger.info(f"Deleted chat {chat_id}")

"""
Chat model holding one conversation as an opaque JSON document.
"""

import copy

from sqlalchemy import JSON, Column, String

from .base import BaseModel


class Chat(BaseModel):
    """
    Represents a chat conversation with its full message transcript.

    Messages are stored exactly as the client shapes them (camelCase keys,
    assistant responses with ``versions``), including documents written by
    older clients; they are normalized lazily by the chat domain, never here.
    """

    __tablename__ = "chats"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False, default="New Chat")
    messages = Column(JSON, nullable=False, default=list)

    def to_document(self) -> dict:
        """Return the chat in its wire shape."""
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at.isoformat() + "Z" if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() + "Z" if self.updated_at else None,
            "messages": copy.deepcopy(self.messages) if self.messages is not None else [],
        }

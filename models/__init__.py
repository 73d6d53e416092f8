"""
Models package initialization.
"""

from .base import Base, BaseModel
from .chat import Chat

__all__ = [
    "Base",
    "BaseModel",
    "Chat",
]

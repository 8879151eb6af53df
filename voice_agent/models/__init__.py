"""SQLAlchemy models for the MVC architecture."""

from .base import Base
from .conversation import ConversationSession, Message, MessageRole  # noqa: F401
from .user import User  # noqa: F401

__all__ = [
    "Base",
    "User",
    "ConversationSession",
    "Message",
    "MessageRole",
]

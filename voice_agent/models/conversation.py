"""SQLAlchemy models for conversation sessions and their messages."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy import Enum as SqlEnum

from voice_agent.models.base import Base
from voice_agent.models.user import utc_now


class MessageRole(str, Enum):
    """Enumeration of the speakers a message can belong to."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationSession(Base):
    """One durable conversation thread owned by a single user."""

    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    last_activity_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
    )
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)


class Message(Base):
    """One append-only half of a turn."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_session_created", "session_id", "created_at"),)

    # Autoincrement id doubles as the insertion-order tie breaker.
    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Uuid,
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(
        SqlEnum(
            MessageRole,
            name="message_role",
            values_callable=lambda roles: [role.value for role in roles],
        ),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


__all__ = ["ConversationSession", "Message", "MessageRole"]

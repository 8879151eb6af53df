"""Pydantic schemas for conversation sessions and their messages."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionCreatedResponse(BaseModel):
    session_id: UUID = Field(serialization_alias="sessionId")
    created_at: datetime = Field(serialization_alias="createdAt")


class SessionResponse(BaseModel):
    """Session document returned to its owner."""

    model_config = ConfigDict(from_attributes=True)

    session_id: UUID = Field(validation_alias="id", serialization_alias="sessionId")
    created_at: datetime = Field(serialization_alias="createdAt")
    last_activity_at: datetime = Field(serialization_alias="lastActivityAt")
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")


class MessageResponse(BaseModel):
    role: str
    content: str
    created_at: datetime = Field(serialization_alias="createdAt")


class MessagesResponse(BaseModel):
    session_id: UUID = Field(serialization_alias="sessionId")
    messages: list[MessageResponse]


__all__ = [
    "SessionCreatedResponse",
    "SessionResponse",
    "MessageResponse",
    "MessagesResponse",
]

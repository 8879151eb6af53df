"""Conversation session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from voice_agent.controllers.dependencies import CurrentOwnerDep, PipelineDep
from voice_agent.errors import SessionNotFound
from voice_agent.pipelines.voice import parse_session_id
from voice_agent.views import (
    MessageResponse,
    MessagesResponse,
    SessionCreatedResponse,
    SessionResponse,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "",
    response_model=SessionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    owner: CurrentOwnerDep,
    pipeline: PipelineDep,
) -> SessionCreatedResponse:
    """Open an empty conversation explicitly."""

    record = await pipeline.sessions.create(owner.owner_id)
    return SessionCreatedResponse(session_id=record.id, created_at=record.created_at)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    owner: CurrentOwnerDep,
    pipeline: PipelineDep,
) -> SessionResponse:
    parsed = parse_session_id(session_id)
    record = await pipeline.sessions.get(parsed, owner.owner_id) if parsed else None
    if record is None:
        raise SessionNotFound()
    return SessionResponse.model_validate(record)


@router.get("/{session_id}/messages", response_model=MessagesResponse)
async def list_messages(
    session_id: str,
    owner: CurrentOwnerDep,
    pipeline: PipelineDep,
    limit: int = Query(default=20, ge=1),
) -> MessagesResponse:
    """Most recent messages of a session, oldest first. ``limit`` is capped."""

    parsed = parse_session_id(session_id)
    record = await pipeline.sessions.get(parsed, owner.owner_id) if parsed else None
    if record is None:
        raise SessionNotFound()

    messages = await pipeline.context.fetch(record.id, limit, owner_id=owner.owner_id)
    return MessagesResponse(
        session_id=record.id,
        messages=[
            MessageResponse(
                role=getattr(message.role, "value", message.role),
                content=message.content,
                created_at=message.created_at,
            )
            for message in messages
        ],
    )

"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated, AsyncIterator, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voice_agent.database import Database
from voice_agent.errors import StorageError, Unauthenticated
from voice_agent.models import User as UserModel
from voice_agent.pipelines.voice import Owner, VoiceConversationPipeline
from voice_agent.utils import AuthenticationError, decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_pipeline(request: Request) -> VoiceConversationPipeline:
    return request.app.state.pipeline


DatabaseDep = Annotated[Database, Depends(get_database)]
PipelineDep = Annotated[VoiceConversationPipeline, Depends(get_pipeline)]


async def get_session(database: DatabaseDep) -> AsyncIterator[AsyncSession]:
    """Yield a database session scoped to the request."""

    async with database.session() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_owner(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    session: SessionDep,
) -> Owner:
    """Resolve the authenticated owner referenced by the bearer token."""

    if not token:
        raise Unauthenticated()

    try:
        payload = decode_access_token(token)
        user_id = UUID(payload.sub)
    except (AuthenticationError, ValueError):
        raise Unauthenticated("Could not validate credentials") from None

    try:
        user = await session.get(UserModel, user_id)
    except SQLAlchemyError as exc:
        raise StorageError(detail=repr(exc)) from exc
    if user is None:
        raise Unauthenticated("User not found")

    return Owner(owner_id=user.id, owner_label=user.email)


CurrentOwnerDep = Annotated[Owner, Depends(get_current_owner)]


__all__ = [
    "get_current_owner",
    "get_database",
    "get_pipeline",
    "get_session",
    "oauth2_scheme",
    "CurrentOwnerDep",
    "DatabaseDep",
    "PipelineDep",
    "SessionDep",
]

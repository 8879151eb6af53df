"""Session resolution: reuse a caller's session or open a fresh one."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from voice_agent.database import Database
from voice_agent.errors import StorageError
from voice_agent.models import ConversationSession
from voice_agent.models.user import utc_now

logger = logging.getLogger("voice_agent.pipeline")


def parse_session_id(raw: str | UUID | None) -> UUID | None:
    """Return the UUID named by ``raw``; blank or malformed ids yield None."""

    if raw is None or isinstance(raw, UUID):
        return raw
    text = raw.strip()
    if not text:
        return None
    try:
        return UUID(text)
    except ValueError:
        return None


class SessionResolver:
    """Owns the ``sessions`` table on behalf of the pipeline and the API."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get(self, session_id: UUID, owner_id: UUID) -> ConversationSession | None:
        """Fetch a session only if it belongs to ``owner_id``."""

        try:
            async with self._database.session() as db:
                result = await db.execute(
                    select(ConversationSession).where(
                        ConversationSession.id == session_id,
                        ConversationSession.owner_id == owner_id,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(detail=repr(exc), stage="resolving") from exc

    async def create(self, owner_id: UUID, *, metadata: dict | None = None) -> ConversationSession:
        now = utc_now()
        record = ConversationSession(
            owner_id=owner_id,
            created_at=now,
            last_activity_at=now,
            metadata_=dict(metadata or {}),
        )
        try:
            async with self._database.session() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(detail=repr(exc), stage="resolving") from exc
        logger.info("Created session %s for owner %s", record.id, owner_id)
        return record

    async def touch(self, session_id: UUID) -> None:
        """Bump ``last_activity_at``; the guard keeps it from moving backwards."""

        now = utc_now()
        try:
            async with self._database.session() as db:
                await db.execute(
                    update(ConversationSession)
                    .where(
                        ConversationSession.id == session_id,
                        ConversationSession.last_activity_at <= now,
                    )
                    .values(last_activity_at=now)
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(detail=repr(exc), stage="resolving") from exc

    async def resolve(self, owner_id: UUID, requested: str | UUID | None) -> UUID:
        """Return the session this turn belongs to.

        A known id owned by the caller is reused and marked active. Missing,
        malformed, stale or foreign ids get a brand new session; the caller
        learns its id from the response.
        """

        session_id = parse_session_id(requested)
        existing = await self.get(session_id, owner_id) if session_id else None
        if existing is not None:
            await self.touch(existing.id)
            return existing.id

        if session_id is not None:
            logger.info("Session %s not found for owner %s; starting a new one", session_id, owner_id)
        created = await self.create(owner_id)
        return created.id


__all__ = ["SessionResolver", "parse_session_id"]

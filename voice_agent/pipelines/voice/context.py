"""Conversation context: the most recent messages of a session, oldest first."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from voice_agent.database import Database
from voice_agent.errors import StorageError
from voice_agent.models import ConversationSession, Message

from .types import ChatMessage

DEFAULT_CONTEXT_LIMIT = 20
MAX_CONTEXT_LIMIT = 100


class ContextLoader:
    def __init__(
        self,
        database: Database,
        *,
        default_limit: int = DEFAULT_CONTEXT_LIMIT,
        max_limit: int = MAX_CONTEXT_LIMIT,
    ) -> None:
        self._database = database
        self.default_limit = default_limit
        self.max_limit = max_limit

    def clamp(self, limit: int | None) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))

    async def fetch(
        self,
        session_id: UUID,
        limit: int | None = None,
        *,
        owner_id: UUID | None = None,
    ) -> list[Message]:
        """Return up to ``limit`` newest message rows in chronological order.

        With ``owner_id`` the read is restricted to sessions that owner holds,
        so a foreign session id yields nothing.
        """

        statement = select(Message).where(
            Message.session_id == session_id
        )
        if owner_id is not None:
            statement = statement.join(
                ConversationSession, ConversationSession.id == Message.session_id
            ).where(ConversationSession.owner_id == owner_id)
        # Newest first to bound the window; (created_at, id) breaks ties.
        statement = statement.order_by(
            Message.created_at.desc(), Message.id.desc()
        ).limit(self.clamp(limit))

        try:
            async with self._database.session() as db:
                rows = (await db.execute(statement)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(detail=repr(exc), stage="resolving") from exc
        return list(reversed(rows))

    async def load(
        self,
        session_id: UUID,
        limit: int | None = None,
        *,
        owner_id: UUID | None = None,
    ) -> list[ChatMessage]:
        """Return the conversation context as role/content pairs, oldest first."""

        messages = await self.fetch(session_id, limit, owner_id=owner_id)
        return [
            {"role": getattr(message.role, "value", message.role), "content": message.content}
            for message in messages
        ]


__all__ = ["ContextLoader", "DEFAULT_CONTEXT_LIMIT", "MAX_CONTEXT_LIMIT"]

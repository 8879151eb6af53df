"""Turn persistence: append both halves of a completed turn."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from voice_agent.database import Database
from voice_agent.errors import StorageError
from voice_agent.models import ConversationSession, Message, MessageRole
from voice_agent.models.user import utc_now

logger = logging.getLogger("voice_agent.pipeline")


class TurnRecorder:
    """Write the user utterance and the assistant reply in one transaction.

    Either both rows land or neither does. The reply is stamped strictly
    after the utterance so chronological reads keep the pair in order.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def record(
        self, session_id: UUID, user_text: str, assistant_text: str
    ) -> tuple[Message, Message]:
        user_at = utc_now()
        assistant_at = max(utc_now(), user_at + timedelta(microseconds=1))
        user_message = Message(
            session_id=session_id,
            role=MessageRole.USER,
            content=user_text,
            created_at=user_at,
        )
        assistant_message = Message(
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            content=assistant_text,
            created_at=assistant_at,
        )
        try:
            async with self._database.session() as db:
                async with db.begin():
                    db.add(user_message)
                    await db.flush()
                    db.add(assistant_message)
                    await db.flush()
                    await db.execute(
                        update(ConversationSession)
                        .where(
                            ConversationSession.id == session_id,
                            ConversationSession.last_activity_at <= assistant_at,
                        )
                        .values(last_activity_at=assistant_at)
                    )
        except SQLAlchemyError as exc:
            logger.error("Failed to persist turn for session %s: %r", session_id, exc)
            raise StorageError(detail=repr(exc), stage="persisting") from exc

        logger.debug(
            "Persisted turn session=%s user_id=%s assistant_id=%s",
            session_id,
            user_message.id,
            assistant_message.id,
        )
        return user_message, assistant_message


__all__ = ["TurnRecorder"]

"""Typed containers shared across the voice conversation pipeline.

These dataclasses live in their own module so the stage modules can import
them without creating circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

ChatMessage = dict[str, str]
"""One ``{"role": ..., "content": ...}`` entry of conversation context."""


@dataclass(frozen=True)
class Owner:
    """Authenticated caller as reported by the authentication collaborator."""

    owner_id: UUID
    owner_label: str


@dataclass(frozen=True)
class AudioUpload:
    """Raw uploaded utterance exactly as received from the caller."""

    data: bytes
    filename: str | None = None
    media_type: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the intake check; a rejection is a value, not an exception."""

    valid: bool
    size: int | None = None
    duration: float | None = None
    reason: str | None = None

    @classmethod
    def reject(cls, reason: str, *, size: int | None = None) -> "ValidationResult":
        return cls(valid=False, size=size, reason=reason)


@dataclass(frozen=True)
class PreparedAudio:
    """Audio artifact handed to the transcription provider."""

    path: Path
    media_type: str
    transcoded: bool


@dataclass(frozen=True)
class TurnResult:
    """Everything the caller receives for one completed turn."""

    session_id: UUID
    transcript: str
    reply: str
    audio: bytes
    media_type: str
    persisted: bool = True
    storage_error: str | None = None

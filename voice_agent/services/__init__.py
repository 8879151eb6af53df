"""Service layer helpers for external integrations."""

from .llm_client import BedrockLlmClient
from .retry import DEFAULT_MAX_RETRIES, call_with_retries
from .speech import PollySpeechService, SpeechResult
from .transcribe import (
    TranscribeService,
    TranscriptionResult,
    get_transcribe_service,
)

__all__ = [
    "BedrockLlmClient",
    "DEFAULT_MAX_RETRIES",
    "call_with_retries",
    "PollySpeechService",
    "SpeechResult",
    "TranscribeService",
    "TranscriptionResult",
    "get_transcribe_service",
]

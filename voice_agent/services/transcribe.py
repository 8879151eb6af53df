"""Amazon Transcribe integration helpers using Streaming API."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.exceptions import (
    BadRequestException,
    ConflictException,
    InternalFailureException,
    LimitExceededException,
    ServiceUnavailableException,
)
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent

from voice_agent.config.settings import settings
from voice_agent.errors import (
    PipelineError,
    UpstreamRateLimited,
    UpstreamRejected,
    UpstreamTransient,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

PROVIDER = "amazon-transcribe"

# Service exception -> (error class, equivalent HTTP status)
_SERVICE_ERRORS: tuple[tuple[type[Exception], type[PipelineError], int], ...] = (
    (LimitExceededException, UpstreamRateLimited, 429),
    (BadRequestException, UpstreamRejected, 400),
    (ConflictException, UpstreamRejected, 409),
    (InternalFailureException, UpstreamTransient, 500),
    (ServiceUnavailableException, UpstreamTransient, 503),
)


@dataclass(frozen=True)
class TranscriptionResult:
    """Structured transcription outcome returned to the pipeline."""

    transcript: str
    language_code: str | None = None


def classify_transcribe_error(exc: BaseException, *, stage: str) -> PipelineError:
    """Map a streaming SDK failure onto the pipeline error taxonomy by type."""

    if isinstance(exc, PipelineError):
        return exc
    for exc_type, error_cls, status in _SERVICE_ERRORS:
        if isinstance(exc, exc_type):
            return error_cls(
                detail=f"{type(exc).__name__}: {exc}",
                upstream_status=status,
                stage=stage,
                provider=PROVIDER,
            )
    # Socket/CRT level failures carry no status and are worth another attempt.
    return UpstreamTransient(detail=repr(exc), stage=stage, provider=PROVIDER)


class TranscribeService:
    """High-level facade for streaming audio to Amazon Transcribe."""

    def __init__(
        self,
        region: str,
        language_code: str = "en-US",
        chunk_size: int = 8192,
        client_factory: Callable[..., Any] = TranscribeStreamingClient,
    ) -> None:
        self._region = region
        self._language_code = language_code
        self._chunk_size = chunk_size
        self._client_factory = client_factory
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            # Ensure credentials are available to the SDK
            if settings.aws.access_key_id:
                os.environ.setdefault("AWS_ACCESS_KEY_ID", settings.aws.access_key_id)
            if settings.aws.secret_access_key:
                os.environ.setdefault(
                    "AWS_SECRET_ACCESS_KEY",
                    settings.aws.secret_access_key.get_secret_value(),
                )
            self._client = self._client_factory(region=self._region)
        return self._client

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        media_encoding: str = "pcm",
        sample_rate_hz: int = 16000,
        stage: str = "transcribing",
    ) -> TranscriptionResult:
        """Stream audio to Transcribe and return the full transcript.

        One call is one attempt: failures are classified and raised, retries
        are the caller's business.
        """

        if not audio_bytes:
            raise ValidationFailed("Audio payload is empty", stage=stage)

        try:
            stream = await self._get_client().start_stream_transcription(
                language_code=self._language_code,
                media_sample_rate_hz=sample_rate_hz,
                media_encoding=media_encoding,
            )
            handler = _SimpleTranscriptHandler(stream.output_stream)

            async def write_chunks() -> None:
                for offset in range(0, len(audio_bytes), self._chunk_size):
                    chunk = audio_bytes[offset : offset + self._chunk_size]
                    await stream.input_stream.send_audio_event(audio_chunk=chunk)
                await stream.input_stream.end_stream()

            await asyncio.gather(write_chunks(), handler.handle_events())
        except Exception as exc:
            logger.error("Streaming transcription failed: %r", exc)
            raise classify_transcribe_error(exc, stage=stage) from exc

        transcript = handler.transcript.strip()
        logger.info(
            "Transcription complete. encoding=%s bytes=%s length=%s",
            media_encoding,
            len(audio_bytes),
            len(transcript),
        )
        return TranscriptionResult(
            transcript=transcript, language_code=self._language_code
        )


class _SimpleTranscriptHandler(TranscriptResultStreamHandler):
    def __init__(self, transcript_result_stream):
        super().__init__(transcript_result_stream)
        self.transcript = ""

    async def handle_transcript_event(self, transcript_event: TranscriptEvent):
        results = transcript_event.transcript.results
        for result in results:
            if not result.is_partial:
                for alt in result.alternatives[:1]:
                    self.transcript += alt.transcript + " "


def get_transcribe_service() -> TranscribeService:
    """Return a transcribe service configured from settings."""

    return TranscribeService(
        region=settings.aws.region,
        language_code=settings.transcribe.language_code,
        chunk_size=settings.transcribe.chunk_size,
    )


__all__ = [
    "TranscribeService",
    "TranscriptionResult",
    "classify_transcribe_error",
    "get_transcribe_service",
]

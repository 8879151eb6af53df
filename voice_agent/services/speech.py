"""Amazon Polly text-to-speech integration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi.concurrency import run_in_threadpool

from voice_agent.config.settings import settings
from voice_agent.errors import UpstreamTransient
from voice_agent.services.aws import classify_aws_error, create_boto3_client

logger = logging.getLogger(__name__)

PROVIDER = "amazon-polly"

_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "ogg_vorbis": "audio/ogg",
    "pcm": "audio/L16",
}


@dataclass(frozen=True)
class SpeechResult:
    """Synthesised audio bytes plus the codec they are encoded in."""

    audio_bytes: bytes
    media_type: str
    voice_id: str


class PollySpeechService:
    """Generate speech audio for assistant replies using Amazon Polly."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        voice_id: str | None = None,
        engine: str | None = None,
        output_format: str | None = None,
    ) -> None:
        self._client = client
        self._voice_id = voice_id or settings.polly.voice_id
        self._engine = engine or settings.polly.engine
        self._output_format = output_format or settings.polly.output_format

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES.get(self._output_format, "application/octet-stream")

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = create_boto3_client(
                "polly",
                read_timeout=settings.pipeline.call_timeout_seconds,
            )
        return self._client

    async def synthesize(
        self,
        text: str,
        *,
        voice_id: str | None = None,
        stage: str = "synthesizing",
    ) -> SpeechResult:
        """Convert text to speech in the configured output format."""

        voice = voice_id or self._voice_id

        def _call() -> bytes:
            response: dict[str, Any] = self._get_client().synthesize_speech(
                Text=text,
                TextType="text",
                VoiceId=voice,
                Engine=self._engine,
                OutputFormat=self._output_format,
            )
            audio_stream = response.get("AudioStream")
            if audio_stream is None:
                return b""
            try:
                return audio_stream.read()
            finally:
                audio_stream.close()

        try:
            audio_bytes = await run_in_threadpool(_call)
        except Exception as exc:
            logger.error("Polly synth failed for voice '%s': %r", voice, exc)
            raise classify_aws_error(exc, provider=PROVIDER, stage=stage) from exc

        if not audio_bytes:
            # A truncated stream is worth another attempt.
            raise UpstreamTransient(
                detail="Polly returned an empty audio stream.",
                stage=stage,
                provider=PROVIDER,
            )

        return SpeechResult(
            audio_bytes=audio_bytes,
            media_type=self.media_type,
            voice_id=voice,
        )


__all__ = ["PollySpeechService", "SpeechResult"]

"""Speech-to-text stage: stream the prepared audio to Amazon Transcribe."""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from dataclasses import dataclass
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from voice_agent.services.retry import DEFAULT_MAX_RETRIES, SleepFn, call_with_retries
from voice_agent.services.transcribe import PROVIDER, TranscribeService

from .types import PreparedAudio

logger = logging.getLogger("voice_agent.pipeline")

_WAV_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})
# Containers the streaming API accepts without decoding on our side.
_PASSTHROUGH_ENCODINGS = {"audio/flac": "flac", "audio/ogg": "ogg-opus"}


@dataclass(frozen=True)
class StreamPayload:
    audio: bytes
    media_encoding: str
    sample_rate_hz: int
    native: bool = True


def _pcm_frames(raw: bytes) -> tuple[bytes, int] | None:
    try:
        with wave.open(io.BytesIO(raw), "rb") as reader:
            if reader.getsampwidth() != 2 or reader.getnchannels() != 1:
                return None
            return reader.readframes(reader.getnframes()), reader.getframerate()
    except (wave.Error, EOFError):
        return None


def build_stream_payload(
    raw: bytes, media_type: str, *, default_sample_rate: int = 16000
) -> StreamPayload:
    """Turn a prepared file into the bytes and encoding the stream expects.

    16-bit mono WAV files are unwrapped to their PCM frames and FLAC/Ogg go
    through under their own encodings. Anything else (an upload the
    transcoder could not convert) is forwarded untouched as PCM, so the
    provider makes a best-effort attempt and rejects what it cannot read.
    """

    media_type = media_type.lower()
    if media_type in _WAV_TYPES:
        pcm = _pcm_frames(raw)
        if pcm is not None:
            frames, sample_rate = pcm
            return StreamPayload(frames, "pcm", sample_rate)

    encoding = _PASSTHROUGH_ENCODINGS.get(media_type)
    if encoding is not None:
        return StreamPayload(raw, encoding, default_sample_rate)
    return StreamPayload(raw, "pcm", default_sample_rate, native=False)


class TranscriptionClient:
    """Retrying speech-to-text facade used by the orchestrator."""

    def __init__(
        self,
        service: TranscribeService,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float | None = None,
        sample_rate_hz: int = 16000,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._service = service
        self.max_retries = max_retries
        self.timeout = timeout
        self.sample_rate_hz = sample_rate_hz
        self._sleep = sleep

    async def transcribe(self, audio: PreparedAudio, *, stage: str = "transcribing") -> str:
        """Return the recognized text, which may be empty for silent audio."""

        raw = await run_in_threadpool(Path(audio.path).read_bytes)
        payload = build_stream_payload(
            raw, audio.media_type, default_sample_rate=self.sample_rate_hz
        )
        if not payload.native:
            logger.warning(
                "Streaming %s upload untouched as %s; recognition is best effort",
                audio.media_type,
                payload.media_encoding,
            )

        result = await call_with_retries(
            lambda: self._service.transcribe(
                payload.audio,
                media_encoding=payload.media_encoding,
                sample_rate_hz=payload.sample_rate_hz,
                stage=stage,
            ),
            max_retries=self.max_retries,
            timeout=self.timeout,
            label="transcription",
            stage=stage,
            provider=PROVIDER,
            sleep=self._sleep,
        )
        return result.transcript.strip()


__all__ = ["StreamPayload", "TranscriptionClient", "build_stream_payload"]

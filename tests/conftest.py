"""Shared fixtures: a throwaway database, provider fakes and a pipeline builder."""

from __future__ import annotations

import io
import wave
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Iterable, Sequence
from uuid import uuid4

import pytest

from voice_agent.database import Database
from voice_agent.pipelines.voice import (
    AudioTranscoder,
    AudioValidator,
    ContextLoader,
    Owner,
    ResponseGenerator,
    SessionResolver,
    SpeechSynthesizer,
    TranscriptionClient,
    TurnRecorder,
    VoiceConversationPipeline,
)
from voice_agent.pipelines.voice.tools import CommandResult
from voice_agent.services.speech import SpeechResult
from voice_agent.services.transcribe import TranscriptionResult

ALLOWED_TYPES = ("audio/wav", "audio/x-wav", "audio/wave", "audio/mpeg", "audio/webm", "audio/flac")


def make_wav_bytes(duration_seconds: float = 0.2, sample_rate: int = 16000) -> bytes:
    """Return a silent 16-bit mono WAV file."""

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(1)
        writer.setsampwidth(2)
        writer.setframerate(sample_rate)
        writer.writeframes(b"\x00\x00" * int(duration_seconds * sample_rate))
    return buffer.getvalue()


def _next_outcome(outcomes: list[Any]) -> Any:
    # The last scripted outcome repeats once the script runs out.
    outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class FakeTranscribeService:
    def __init__(self, outcomes: Iterable[Any] = ("hello there",)) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def transcribe(self, audio_bytes, *, media_encoding="pcm", sample_rate_hz=16000, stage="transcribing"):
        self.calls.append(
            {"bytes": len(audio_bytes), "encoding": media_encoding, "rate": sample_rate_hz}
        )
        return TranscriptionResult(transcript=_next_outcome(self.outcomes), language_code="en-US")


class FakeLlmClient:
    def __init__(self, outcomes: Iterable[Any] = ("Hi! How can I help?",)) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def converse(self, *, system_prompt, messages, max_tokens=None, temperature=None, stage="generating"):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": [dict(m) for m in messages],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        return _next_outcome(self.outcomes)


class FakeSpeechService:
    def __init__(self, outcomes: Iterable[Any] = (b"ID3-fake-mp3",)) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    async def synthesize(self, text, *, voice_id=None, stage="synthesizing"):
        self.calls.append(text)
        audio = _next_outcome(self.outcomes)
        return SpeechResult(audio_bytes=audio, media_type="audio/mpeg", voice_id="Joanna")


class FakeProbe:
    def __init__(self, outcome: Any = 2.0) -> None:
        self.outcome = outcome
        self.calls: list[Path] = []

    async def __call__(self, path: Path) -> float:
        self.calls.append(path)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class FakeFfmpeg:
    """Stands in for ffmpeg: writes a 16 kHz mono WAV to the output path."""

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[Sequence[str]] = []

    async def __call__(self, args: Sequence[str]) -> CommandResult:
        self.calls.append(list(args))
        if self.returncode != 0:
            return CommandResult(returncode=self.returncode, stderr=b"Invalid data found")
        Path(args[-2]).write_bytes(make_wav_bytes())
        return CommandResult(returncode=0)


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav_bytes()


@pytest.fixture
def owner() -> Owner:
    return Owner(owner_id=uuid4(), owner_label="owner@example.com")


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'voice.db'}"


@pytest.fixture
async def database(database_url: str):
    db = Database(database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def build_pipeline(artifact_dir: Path):
    """Return a factory wiring a pipeline around fakes; no network or ffmpeg."""

    def _build(
        database: Database,
        *,
        transcripts: Iterable[Any] = ("hello there",),
        replies: Iterable[Any] = ("Hi! How can I help?",),
        speech: Iterable[Any] = (b"ID3-fake-mp3",),
        llm_client: Any = None,
        probe: FakeProbe | None = None,
        ffmpeg: FakeFfmpeg | None = None,
        recorder: Any = None,
        max_size_bytes: int = 25 * 1024 * 1024,
        max_retries: int = 2,
        deadline_seconds: float = 110.0,
        sleeps: list[float] | None = None,
    ) -> tuple[VoiceConversationPipeline, SimpleNamespace]:
        fakes = SimpleNamespace(
            transcribe=FakeTranscribeService(transcripts),
            llm=llm_client or FakeLlmClient(replies),
            speech=FakeSpeechService(speech),
            probe=probe or FakeProbe(),
            ffmpeg=ffmpeg or FakeFfmpeg(),
            sleeps=sleeps if sleeps is not None else [],
        )

        async def record_sleep(seconds: float) -> None:
            fakes.sleeps.append(seconds)

        pipeline = VoiceConversationPipeline(
            validator=AudioValidator(
                max_size_bytes=max_size_bytes,
                max_duration_seconds=300,
                allowed_media_types=ALLOWED_TYPES,
                probe=fakes.probe,
            ),
            transcoder=AudioTranscoder(runner=fakes.ffmpeg),
            sessions=SessionResolver(database),
            context=ContextLoader(database),
            transcriber=TranscriptionClient(
                fakes.transcribe, max_retries=max_retries, sleep=record_sleep
            ),
            generator=ResponseGenerator(
                fakes.llm,
                system_prompt="You are a helpful voice assistant.",
                max_retries=max_retries,
                sleep=record_sleep,
            ),
            synthesizer=SpeechSynthesizer(
                fakes.speech, max_retries=max_retries, sleep=record_sleep
            ),
            recorder=recorder or TurnRecorder(database),
            deadline_seconds=deadline_seconds,
            context_limit=20,
            temp_dir=str(artifact_dir),
        )
        return pipeline, fakes

    return _build


def leftover_files(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(directory.iterdir())


@pytest.fixture
def leftovers(artifact_dir: Path):
    return lambda: leftover_files(artifact_dir)

"""End-to-end turns through the voice conversation pipeline with fake providers."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import FakeFfmpeg, FakeProbe
from voice_agent.errors import (
    PipelineTimeout,
    StorageError,
    UpstreamRateLimited,
    UpstreamRejected,
    UpstreamTransient,
    ValidationFailed,
)
from voice_agent.models import ConversationSession
from voice_agent.pipelines.voice import AudioUpload, ContextLoader, NO_SPEECH_MESSAGE


def upload_of(data: bytes, media_type: str = "audio/wav") -> AudioUpload:
    return AudioUpload(data=data, filename="utterance.wav", media_type=media_type)


@pytest.mark.asyncio
async def test_two_turns_build_a_conversation(database, owner, build_pipeline, wav_bytes, leftovers):
    pipeline, fakes = build_pipeline(
        database,
        transcripts=["What is the capital of France?", "And of Spain?"],
        replies=["Paris.", "Madrid."],
    )

    first = await pipeline.run(owner, upload_of(wav_bytes))
    second = await pipeline.run(owner, upload_of(wav_bytes), str(first.session_id))

    assert first.transcript == "What is the capital of France?"
    assert first.reply == "Paris."
    assert first.audio == b"ID3-fake-mp3"
    assert first.media_type == "audio/mpeg"
    assert first.persisted
    assert second.session_id == first.session_id

    assert fakes.llm.calls[0]["messages"] == [
        {"role": "user", "content": "What is the capital of France?"}
    ]
    assert fakes.llm.calls[1]["messages"] == [
        {"role": "user", "content": "What is the capital of France?"},
        {"role": "assistant", "content": "Paris."},
        {"role": "user", "content": "And of Spain?"},
    ]

    history = await ContextLoader(database).load(first.session_id)
    assert [m["content"] for m in history] == [
        "What is the capital of France?",
        "Paris.",
        "And of Spain?",
        "Madrid.",
    ]
    assert leftovers() == []


@pytest.mark.asyncio
async def test_oversized_upload_never_reaches_providers(database, owner, build_pipeline, leftovers):
    pipeline, fakes = build_pipeline(database, max_size_bytes=1024)

    with pytest.raises(ValidationFailed) as excinfo:
        await pipeline.run(owner, upload_of(b"R" * 4096))

    assert excinfo.value.stage == "validating"
    assert fakes.probe.calls == []
    assert fakes.transcribe.calls == []
    assert fakes.llm.calls == []
    assert fakes.speech.calls == []
    assert leftovers() == []


@pytest.mark.asyncio
async def test_silence_is_rejected_as_no_speech(database, owner, build_pipeline, wav_bytes, leftovers):
    pipeline, fakes = build_pipeline(database, transcripts=["   "])

    with pytest.raises(ValidationFailed) as excinfo:
        await pipeline.run(owner, upload_of(wav_bytes))

    assert excinfo.value.message == NO_SPEECH_MESSAGE
    assert fakes.llm.calls == []
    assert leftovers() == []


@pytest.mark.asyncio
async def test_unreadable_audio_is_rejected(database, owner, build_pipeline, wav_bytes):
    from voice_agent.pipelines.voice.ingestion import ProbeFailed

    pipeline, fakes = build_pipeline(database, probe=FakeProbe(ProbeFailed("bad header")))

    with pytest.raises(ValidationFailed):
        await pipeline.run(owner, upload_of(wav_bytes))
    assert fakes.transcribe.calls == []


@pytest.mark.asyncio
async def test_generation_outage_exhausts_retries_and_persists_nothing(
    database, owner, build_pipeline, wav_bytes, leftovers
):
    pipeline, fakes = build_pipeline(
        database,
        replies=[UpstreamTransient(upstream_status=503)],
        max_retries=2,
    )
    requested = None

    with pytest.raises(UpstreamTransient) as excinfo:
        await pipeline.run(owner, upload_of(wav_bytes), requested)

    assert excinfo.value.stage == "generating"
    assert len(fakes.llm.calls) == 3
    assert fakes.sleeps == [1, 2]
    assert fakes.speech.calls == []
    assert leftovers() == []


@pytest.mark.asyncio
async def test_failed_turn_leaves_existing_history_untouched(
    database, owner, build_pipeline, wav_bytes
):
    pipeline, _ = build_pipeline(database, transcripts=["first"], replies=["one"])
    first = await pipeline.run(owner, upload_of(wav_bytes))

    failing, _ = build_pipeline(database, replies=[UpstreamRateLimited(upstream_status=429)])
    with pytest.raises(UpstreamRateLimited):
        await failing.run(owner, upload_of(wav_bytes), first.session_id)

    history = await ContextLoader(database).load(first.session_id)
    assert [m["content"] for m in history] == ["first", "one"]


@pytest.mark.asyncio
async def test_stale_session_id_starts_fresh_conversation(database, owner, build_pipeline, wav_bytes):
    pipeline, fakes = build_pipeline(database)
    stale = uuid4()

    result = await pipeline.run(owner, upload_of(wav_bytes), str(stale))

    assert result.session_id != stale
    assert fakes.llm.calls[0]["messages"] == [{"role": "user", "content": "hello there"}]


@pytest.mark.asyncio
async def test_other_owners_history_is_never_used(database, owner, build_pipeline, wav_bytes):
    from voice_agent.pipelines.voice import Owner

    pipeline, fakes = build_pipeline(database, transcripts=["private"], replies=["noted"])
    mine = await pipeline.run(owner, upload_of(wav_bytes))

    intruder = Owner(owner_id=uuid4(), owner_label="other@example.com")
    other, other_fakes = build_pipeline(database)
    result = await other.run(intruder, upload_of(wav_bytes), mine.session_id)

    assert result.session_id != mine.session_id
    assert other_fakes.llm.calls[0]["messages"] == [{"role": "user", "content": "hello there"}]


@pytest.mark.asyncio
async def test_storage_failure_still_returns_audio(database, owner, build_pipeline, wav_bytes, leftovers):
    class BrokenRecorder:
        async def record(self, session_id, user_text, assistant_text):
            raise StorageError(detail="disk full", stage="persisting")

    pipeline, _ = build_pipeline(database, recorder=BrokenRecorder())

    result = await pipeline.run(owner, upload_of(wav_bytes))

    assert result.audio == b"ID3-fake-mp3"
    assert result.persisted is False
    assert result.storage_error == "STORAGE_ERROR"
    assert leftovers() == []


@pytest.mark.asyncio
async def test_deadline_expiry_times_out_and_cleans_up(database, owner, build_pipeline, wav_bytes, leftovers):
    class HangingLlm:
        async def converse(self, **kwargs):
            await asyncio.sleep(30)

    pipeline, _ = build_pipeline(database, llm_client=HangingLlm(), deadline_seconds=0.3)

    with pytest.raises(PipelineTimeout) as excinfo:
        await pipeline.run(owner, upload_of(wav_bytes))

    assert excinfo.value.stage == "generating"
    assert leftovers() == []


@pytest.mark.asyncio
async def test_cancellation_cleans_up(database, owner, build_pipeline, wav_bytes, leftovers):
    started = asyncio.Event()

    class BlockingLlm:
        async def converse(self, **kwargs):
            started.set()
            await asyncio.sleep(30)

    pipeline, _ = build_pipeline(database, llm_client=BlockingLlm())
    task = asyncio.create_task(pipeline.run(owner, upload_of(wav_bytes)))
    await asyncio.wait_for(started.wait(), timeout=5)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert leftovers() == []


@pytest.mark.asyncio
async def test_unexpected_errors_become_internal_errors(database, owner, build_pipeline, wav_bytes, leftovers):
    from voice_agent.errors import InternalError

    class ExplodingLlm:
        async def converse(self, **kwargs):
            raise KeyError("output")

    pipeline, _ = build_pipeline(database, llm_client=ExplodingLlm(), max_retries=0)

    with pytest.raises(InternalError):
        await pipeline.run(owner, upload_of(wav_bytes))
    assert leftovers() == []


@pytest.mark.asyncio
async def test_unconverted_mp3_still_reaches_transcription(database, owner, build_pipeline, leftovers):
    pipeline, fakes = build_pipeline(database, ffmpeg=FakeFfmpeg(returncode=1))
    mp3 = b"ID3" + b"\x00" * 2048

    result = await pipeline.run(owner, upload_of(mp3, media_type="audio/mpeg"))

    assert result.reply == "Hi! How can I help?"
    assert fakes.transcribe.calls == [{"bytes": len(mp3), "encoding": "pcm", "rate": 16000}]
    assert leftovers() == []


@pytest.mark.asyncio
async def test_provider_rejection_of_unconverted_audio_is_reported(database, owner, build_pipeline):
    pipeline, fakes = build_pipeline(
        database,
        ffmpeg=FakeFfmpeg(returncode=1),
        transcripts=[UpstreamRejected(upstream_status=400)],
    )

    with pytest.raises(UpstreamRejected) as excinfo:
        await pipeline.run(owner, upload_of(b"\x1aE\xdf\xa3" * 64, media_type="audio/webm"))

    assert excinfo.value.stage == "transcribing"
    assert len(fakes.transcribe.calls) == 1
    assert fakes.llm.calls == []


@pytest.mark.asyncio
async def test_failed_history_load_stops_session_resolution(
    database, owner, build_pipeline, wav_bytes, leftovers
):
    class SlowResolver:
        def __init__(self, inner):
            self.inner = inner
            self.cancelled = False

        async def resolve(self, owner_id, requested):
            try:
                await asyncio.sleep(0.3)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
            return await self.inner.resolve(owner_id, requested)

    class BrokenContext:
        async def load(self, session_id, limit=None, *, owner_id=None):
            raise StorageError(detail="connection reset")

    pipeline, fakes = build_pipeline(database)
    resolver = SlowResolver(pipeline.sessions)
    pipeline.sessions = resolver
    pipeline.context = BrokenContext()

    with pytest.raises(StorageError) as excinfo:
        await pipeline.run(owner, upload_of(wav_bytes), str(uuid4()))

    assert excinfo.value.stage == "resolving"
    assert resolver.cancelled
    await asyncio.sleep(0.5)
    async with database.session() as db:
        assert await db.scalar(select(func.count()).select_from(ConversationSession)) == 0
    assert fakes.transcribe.calls == []
    assert leftovers() == []

from __future__ import annotations

import io
import wave

import pytest

from conftest import FakeTranscribeService, make_wav_bytes, no_sleep
from voice_agent.errors import UpstreamRejected, UpstreamTransient
from voice_agent.pipelines.voice.transcription import (
    TranscriptionClient,
    build_stream_payload,
)
from voice_agent.pipelines.voice.types import PreparedAudio


def test_wav_payload_is_unwrapped_to_pcm_frames():
    raw = make_wav_bytes(duration_seconds=0.5, sample_rate=16000)

    payload = build_stream_payload(raw, "audio/wav")

    assert payload.media_encoding == "pcm"
    assert payload.sample_rate_hz == 16000
    assert len(payload.audio) == 16000  # 0.5 s of 16-bit mono


def test_flac_is_streamed_as_is():
    payload = build_stream_payload(b"fLaC....", "audio/flac")

    assert payload.media_encoding == "flac"
    assert payload.audio == b"fLaC...."


@pytest.mark.parametrize(
    ("raw", "media_type"),
    [(b"ID3...", "audio/mpeg"), (b"\x1aE\xdf\xa3", "audio/webm"), (b"junk", "audio/wav")],
)
def test_unconverted_audio_is_forwarded_untouched(raw, media_type):
    payload = build_stream_payload(raw, media_type)

    assert payload.audio == raw
    assert payload.media_encoding == "pcm"
    assert payload.native is False


def test_stereo_wav_is_forwarded_untouched():
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(2)
        writer.setsampwidth(2)
        writer.setframerate(44100)
        writer.writeframes(b"\x00\x00\x00\x00" * 100)
    raw = buffer.getvalue()

    payload = build_stream_payload(raw, "audio/wav")

    assert payload.audio == raw
    assert payload.native is False


@pytest.fixture
def prepared(tmp_path) -> PreparedAudio:
    path = tmp_path / "clip.wav"
    path.write_bytes(make_wav_bytes())
    return PreparedAudio(path=path, media_type="audio/wav", transcoded=True)


@pytest.mark.asyncio
async def test_transcription_retries_transient_failures(prepared):
    service = FakeTranscribeService([UpstreamTransient(), "  turn on the lights  "])
    client = TranscriptionClient(service, max_retries=2, sleep=no_sleep)

    assert await client.transcribe(prepared) == "turn on the lights"
    assert len(service.calls) == 2
    assert service.calls[0]["encoding"] == "pcm"


@pytest.mark.asyncio
async def test_transcription_rejection_is_terminal(prepared):
    service = FakeTranscribeService([UpstreamRejected(upstream_status=400)])
    client = TranscriptionClient(service, max_retries=2, sleep=no_sleep)

    with pytest.raises(UpstreamRejected):
        await client.transcribe(prepared)
    assert len(service.calls) == 1


@pytest.mark.asyncio
async def test_silent_audio_yields_empty_text(prepared):
    client = TranscriptionClient(FakeTranscribeService([""]), sleep=no_sleep)

    assert await client.transcribe(prepared) == ""

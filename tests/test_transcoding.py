from __future__ import annotations

import asyncio

import pytest

from conftest import FakeFfmpeg
from voice_agent.pipelines.voice.artifacts import ArtifactScope
from voice_agent.pipelines.voice.tools import MediaToolUnavailable, run_command
from voice_agent.pipelines.voice.transcoding import AudioTranscoder


@pytest.mark.asyncio
async def test_successful_transcode_replaces_original(tmp_path):
    ffmpeg = FakeFfmpeg()
    transcoder = AudioTranscoder(runner=ffmpeg)

    with ArtifactScope(tmp_path) as scope:
        original = await scope.write(b"webm bytes", filename="clip.webm")
        prepared = await transcoder.prepare(original, "audio/webm", scope)

        assert prepared.transcoded
        assert prepared.media_type == "audio/wav"
        assert prepared.path.exists()
        assert not original.exists()
        assert scope.live == (prepared.path,)

    command = ffmpeg.calls[0]
    assert command[:3] == ["ffmpeg", "-i", str(original)]
    assert command[3:9] == ["-ar", "16000", "-ac", "1", "-f", "wav"]
    assert command[-1] == "-y"


@pytest.mark.asyncio
async def test_failed_transcode_falls_back_to_original(tmp_path, caplog):
    transcoder = AudioTranscoder(runner=FakeFfmpeg(returncode=1))

    with ArtifactScope(tmp_path) as scope:
        original = await scope.write(b"flac bytes", filename="clip.flac")
        with caplog.at_level("WARNING", logger="voice_agent.pipeline"):
            prepared = await transcoder.prepare(original, "audio/flac", scope)

        assert not prepared.transcoded
        assert prepared.path == original
        assert prepared.media_type == "audio/flac"
        assert scope.live == (original,)

    assert "Transcoding failed" in caplog.text


@pytest.mark.asyncio
async def test_missing_ffmpeg_falls_back_to_original(tmp_path):
    async def runner(args):
        raise MediaToolUnavailable("ffmpeg is not installed")

    with ArtifactScope(tmp_path) as scope:
        original = await scope.write(b"wav bytes")
        prepared = await AudioTranscoder(runner=runner).prepare(original, "audio/wav", scope)

    assert prepared.path == original
    assert not prepared.transcoded


@pytest.mark.asyncio
async def test_non_executable_ffmpeg_falls_back_to_original(tmp_path, caplog):
    binary = tmp_path / "ffmpeg"
    binary.write_text("#!/bin/sh\nexit 0\n")
    binary.chmod(0o644)
    transcoder = AudioTranscoder(binary=str(binary))

    with ArtifactScope(tmp_path / "work") as scope:
        original = await scope.write(b"webm bytes", filename="clip.webm")
        with caplog.at_level("WARNING", logger="voice_agent.pipeline"):
            prepared = await transcoder.prepare(original, "audio/webm", scope)

        assert not prepared.transcoded
        assert prepared.path == original
        assert prepared.media_type == "audio/webm"
        assert scope.live == (original,)

    assert "Transcoding skipped" in caplog.text


@pytest.mark.asyncio
async def test_run_command_captures_output_and_exit_code():
    result = await run_command(["sh", "-c", "echo out; echo err >&2; exit 3"])

    assert result.returncode == 3
    assert not result.ok
    assert result.stdout.strip() == b"out"
    assert result.stderr_tail() == "err"


@pytest.mark.asyncio
async def test_run_command_kills_a_tool_that_overruns(tmp_path):
    marker = tmp_path / "finished"

    result = await run_command(["sh", "-c", f"sleep 2; touch {marker}"], timeout=0.2)
    await asyncio.sleep(2.5)

    assert result.returncode == -1
    assert not marker.exists()


@pytest.mark.asyncio
async def test_run_command_kills_the_tool_when_cancelled(tmp_path):
    marker = tmp_path / "finished"
    task = asyncio.create_task(run_command(["sh", "-c", f"sleep 2; touch {marker}"]))
    await asyncio.sleep(0.2)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(2.5)

    assert not marker.exists()

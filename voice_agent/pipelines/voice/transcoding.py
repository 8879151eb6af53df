"""Best-effort normalization of uploads to 16 kHz mono WAV."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from voice_agent.config.settings import AudioConfig

from .artifacts import ArtifactScope
from .tools import CommandRunner, MediaToolUnavailable, run_command
from .types import PreparedAudio

logger = logging.getLogger("voice_agent.pipeline")

WAV_MEDIA_TYPE = "audio/wav"


def _non_empty_file(path: Path) -> bool:
    return path.is_file() and path.stat().st_size > 0


class AudioTranscoder:
    """Convert an upload with ffmpeg, falling back to the original on failure.

    A failed conversion never fails the turn: a warning is logged and the
    untouched upload continues down the pipeline.
    """

    def __init__(
        self,
        *,
        binary: str = "ffmpeg",
        sample_rate: int = 16000,
        channels: int = 1,
        runner: CommandRunner = run_command,
    ) -> None:
        self.binary = binary
        self.sample_rate = sample_rate
        self.channels = channels
        self._runner = runner

    @classmethod
    def from_config(cls, config: AudioConfig) -> "AudioTranscoder":
        return cls(
            binary=config.ffmpeg_binary,
            sample_rate=config.target_sample_rate,
            channels=config.target_channels,
        )

    def command(self, source: Path, target: Path) -> list[str]:
        return [
            self.binary,
            "-i",
            str(source),
            "-ar",
            str(self.sample_rate),
            "-ac",
            str(self.channels),
            "-f",
            "wav",
            str(target),
            "-y",
        ]

    async def prepare(
        self, source: Path, media_type: str, scope: ArtifactScope
    ) -> PreparedAudio:
        target = scope.new_path(".wav")
        try:
            result = await self._runner(self.command(source, target))
        except MediaToolUnavailable as exc:
            logger.warning("Transcoding skipped, using original upload: %s", exc)
            scope.discard(target)
            return PreparedAudio(path=source, media_type=media_type, transcoded=False)

        produced = result.ok and await run_in_threadpool(_non_empty_file, target)
        if not produced:
            logger.warning(
                "Transcoding failed (exit %s), using original upload: %s",
                result.returncode,
                result.stderr_tail(),
            )
            scope.discard(target)
            return PreparedAudio(path=source, media_type=media_type, transcoded=False)

        # The original is not needed once a normalized copy exists.
        scope.discard(source)
        return PreparedAudio(path=target, media_type=WAV_MEDIA_TYPE, transcoded=True)


__all__ = ["AudioTranscoder", "WAV_MEDIA_TYPE"]

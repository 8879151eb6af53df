"""Intake validation: size, media type and duration of an uploaded utterance."""

from __future__ import annotations

import functools
import logging
import math
import mimetypes
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from fastapi.concurrency import run_in_threadpool

from voice_agent.config.settings import AudioConfig

from .tools import CommandRunner, MediaToolUnavailable, run_command
from .types import ValidationResult

logger = logging.getLogger("voice_agent.pipeline")

UNSUPPORTED_AUDIO = "Invalid audio file or format not supported"

DurationProbe = Callable[[Path], Awaitable[float]]


class ProbeFailed(RuntimeError):
    """ffprobe could not read a duration from the file."""


def resolve_media_type(declared: str | None, filename: str | None = None) -> str | None:
    """Normalize the declared media type, guessing from the filename if absent.

    Parameters such as ``;codecs=opus`` are dropped so browser recordings
    match the allow-list.
    """

    media_type = (declared or "").split(";", 1)[0].strip().lower()
    if media_type in ("", "application/octet-stream") and filename:
        guessed, _ = mimetypes.guess_type(filename)
        media_type = (guessed or "").lower()
    return media_type or None


async def probe_duration(
    path: Path,
    *,
    binary: str = "ffprobe",
    runner: CommandRunner = run_command,
) -> float:
    """Return the container duration of ``path`` in seconds."""

    result = await runner(
        [
            binary,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
    )
    if not result.ok:
        raise ProbeFailed(result.stderr_tail() or f"exit code {result.returncode}")
    try:
        duration = float(result.stdout.decode("utf-8", errors="replace").strip())
    except ValueError as exc:
        raise ProbeFailed("ffprobe reported no duration") from exc
    if math.isnan(duration) or duration < 0:
        raise ProbeFailed(f"ffprobe reported duration {duration}")
    return duration


class AudioValidator:
    """Accept or reject an uploaded audio file before any provider is called.

    Checks run cheapest first: presence, size, media type, then duration via
    ffprobe. Rejections are returned as a :class:`ValidationResult` value.
    """

    def __init__(
        self,
        *,
        max_size_bytes: int,
        max_duration_seconds: float,
        allowed_media_types: Iterable[str],
        probe: DurationProbe,
        allow_missing_probe: bool = False,
    ) -> None:
        self.max_size_bytes = max_size_bytes
        self.max_duration_seconds = max_duration_seconds
        self.allowed_media_types = frozenset(t.lower() for t in allowed_media_types)
        self._probe = probe
        self.allow_missing_probe = allow_missing_probe

    @classmethod
    def from_config(cls, config: AudioConfig) -> "AudioValidator":
        return cls(
            max_size_bytes=config.max_size_bytes,
            max_duration_seconds=config.max_duration_seconds,
            allowed_media_types=config.allowed_media_types,
            probe=functools.partial(probe_duration, binary=config.ffprobe_binary),
            allow_missing_probe=config.allow_missing_probe,
        )

    async def validate(self, path: Path, media_type: str | None) -> ValidationResult:
        exists = await run_in_threadpool(path.is_file)
        if not exists:
            return ValidationResult.reject("Audio file not found")

        size = (await run_in_threadpool(path.stat)).st_size
        if size == 0:
            return ValidationResult.reject("Audio file is required", size=0)
        if size > self.max_size_bytes:
            limit_mb = self.max_size_bytes / (1024 * 1024)
            return ValidationResult.reject(
                f"File size exceeds {limit_mb:g}MB limit", size=size
            )

        if not media_type or media_type.lower() not in self.allowed_media_types:
            return ValidationResult.reject(
                f"Invalid file type: {media_type or 'unknown'}. "
                "Only audio files are allowed.",
                size=size,
            )

        try:
            duration = await self._probe(path)
        except MediaToolUnavailable as exc:
            if self.allow_missing_probe:
                logger.warning("Skipping duration check: %s", exc)
                return ValidationResult(valid=True, size=size)
            logger.error("Duration probe unavailable: %s", exc)
            return ValidationResult.reject(UNSUPPORTED_AUDIO, size=size)
        except ProbeFailed as exc:
            logger.info("Rejected unreadable audio %s: %s", path.name, exc)
            return ValidationResult.reject(UNSUPPORTED_AUDIO, size=size)

        if duration > self.max_duration_seconds:
            return ValidationResult(
                valid=False,
                size=size,
                duration=duration,
                reason=(
                    f"Audio duration exceeds {self.max_duration_seconds:g} seconds limit"
                ),
            )
        return ValidationResult(valid=True, size=size, duration=duration)


__all__ = [
    "AudioValidator",
    "DurationProbe",
    "ProbeFailed",
    "UNSUPPORTED_AUDIO",
    "probe_duration",
    "resolve_media_type",
]

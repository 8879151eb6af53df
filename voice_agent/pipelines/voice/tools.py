"""Thin async wrapper around the ffmpeg/ffprobe command line tools."""

from __future__ import annotations

import asyncio
import contextlib
from asyncio.subprocess import PIPE
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, limit: int = 300) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()[-limit:]


class MediaToolUnavailable(RuntimeError):
    """The configured ffmpeg/ffprobe binary could not be executed."""


CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


async def run_command(args: Sequence[str], *, timeout: float | None = 60) -> CommandResult:
    """Run ``args`` as a child process and capture its output.

    The child is killed when it outlives ``timeout`` or when the awaiting
    task is cancelled, so no tool keeps writing after its turn has ended.
    """

    try:
        process = await asyncio.create_subprocess_exec(*args, stdout=PIPE, stderr=PIPE)
    except OSError as exc:
        # Missing binary or no exec permission.
        raise MediaToolUnavailable(f"{args[0]} could not be executed: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        return CommandResult(returncode=-1, stderr=b"timed out")
    finally:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
    return CommandResult(process.returncode, stdout, stderr)


__all__ = ["CommandResult", "CommandRunner", "MediaToolUnavailable", "run_command"]

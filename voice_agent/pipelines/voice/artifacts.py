"""Resource lifecycle for the temporary files one turn creates.

Every path handed out by an :class:`ArtifactScope` is removed exactly once
when the scope closes, whether the turn succeeded, failed, timed out or was
cancelled. Stages that finish with a file early may discard it themselves;
the scope then skips it on close.
"""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger("voice_agent.pipeline")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]")


def sanitize_filename(filename: str | None, *, max_length: int = 50) -> str:
    """Reduce a client supplied filename to a safe single path component."""

    if not filename:
        return "upload"
    name = Path(filename.replace("\\", "/")).name
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).lstrip(".")
    return name[-max_length:] or "upload"


class ArtifactScope:
    """Owns the temporary files created while processing one turn."""

    def __init__(self, directory: str | Path | None = None, *, prefix: str = "voice-") -> None:
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self.prefix = prefix
        self._live: dict[Path, None] = {}
        self._closed = False

    @property
    def live(self) -> tuple[Path, ...]:
        return tuple(self._live)

    @property
    def closed(self) -> bool:
        return self._closed

    def new_path(self, suffix: str = "") -> Path:
        """Reserve a unique path inside the scope; the file is not created."""

        if self._closed:
            raise RuntimeError("artifact scope is already closed")
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{self.prefix}{uuid4().hex}{suffix}"
        self._live[path] = None
        return path

    async def write(self, data: bytes, *, filename: str | None = None) -> Path:
        """Persist ``data`` to a fresh artifact and return its path."""

        path = self.new_path(f"-{sanitize_filename(filename)}")
        await run_in_threadpool(path.write_bytes, data)
        return path

    def discard(self, path: Path) -> None:
        """Delete one artifact now. Unknown or already removed paths are ignored."""

        if path not in self._live:
            return
        del self._live[path]
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete temporary file %s: %r", path, exc)

    def close(self) -> None:
        for path in list(self._live):
            self.discard(path)
        self._closed = True

    def __enter__(self) -> "ArtifactScope":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["ArtifactScope", "sanitize_filename"]

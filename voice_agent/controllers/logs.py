"""Read-only access to the application log file."""

from __future__ import annotations

from collections import deque
from enum import Enum
from pathlib import Path

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool

from voice_agent.config.settings import settings
from voice_agent.controllers.dependencies import CurrentOwnerDep
from voice_agent.views import LogEntry, LogsResponse

router = APIRouter(prefix="/logs", tags=["logs"])

_ERROR_LEVELS = frozenset({"ERROR", "CRITICAL"})


class LogType(str, Enum):
    COMBINED = "combined"
    ERROR = "error"


def parse_log_line(line: str) -> LogEntry:
    """Split a ``time | level | logger | message`` record into fields."""

    parts = line.rstrip("\n").split(" | ", 3)
    if len(parts) < 4:
        return LogEntry(message=line.rstrip("\n"))
    timestamp, level, name, message = parts
    return LogEntry(timestamp=timestamp, level=level.strip(), logger=name, message=message)


def read_recent_entries(path: Path, log_type: LogType, lines: int) -> list[LogEntry]:
    """Return up to ``lines`` matching entries, newest first."""

    if not path.is_file():
        return []
    recent: deque[LogEntry] = deque(maxlen=lines)
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for raw in handle:
            if not raw.strip():
                continue
            entry = parse_log_line(raw)
            if log_type is LogType.ERROR and entry.level not in _ERROR_LEVELS:
                continue
            recent.append(entry)
    return list(reversed(recent))


@router.get("", response_model=LogsResponse)
async def get_logs(
    _owner: CurrentOwnerDep,
    type: LogType = Query(default=LogType.COMBINED),
    lines: int = Query(default=100, ge=1, le=1000),
) -> LogsResponse:
    entries = await run_in_threadpool(
        read_recent_entries, Path(settings.log_file), type, lines
    )
    return LogsResponse(type=type.value, count=len(entries), entries=entries)

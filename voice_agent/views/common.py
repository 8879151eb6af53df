"""Common response schemas."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    message: str


class LogEntry(BaseModel):
    timestamp: str | None = None
    level: str | None = None
    logger: str | None = None
    message: str


class LogsResponse(BaseModel):
    type: str
    count: int
    entries: list[LogEntry]

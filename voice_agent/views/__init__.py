"""Pydantic schemas used as views in the MVC architecture."""

from .auth import LoginRequest, RegisterRequest, RegisterResponse, TokenResponse
from .common import ErrorResponse, LogEntry, LogsResponse
from .sessions import (
    MessageResponse,
    MessagesResponse,
    SessionCreatedResponse,
    SessionResponse,
)

__all__ = [
    "ErrorResponse",
    "LogEntry",
    "LogsResponse",
    "LoginRequest",
    "RegisterRequest",
    "RegisterResponse",
    "TokenResponse",
    "MessageResponse",
    "MessagesResponse",
    "SessionCreatedResponse",
    "SessionResponse",
]

"""Closed error taxonomy shared by every pipeline component.

Each failure is classified where it happens: the raising component picks the
concrete subclass, which fixes the caller-facing code, HTTP status and whether
the Transient-Call Wrapper may retry it. Nothing downstream re-derives the
classification from message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """Caller-facing error codes rendered in the JSON error body."""

    VALIDATION = "VALIDATION_ERROR"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "SESSION_NOT_FOUND"
    UPSTREAM_TRANSIENT = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_RATE_LIMITED = "RATE_LIMIT_EXCEEDED"
    UPSTREAM_REJECTED = "UPSTREAM_REJECTED"
    EMPTY_GENERATION = "EMPTY_GENERATION"
    STORAGE = "STORAGE_ERROR"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL_SERVER_ERROR"


class PipelineError(Exception):
    """Base class for every classified failure."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL
    status_code: ClassVar[int] = 500
    retryable: ClassVar[bool] = False
    public_message: ClassVar[str] = "An internal server error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        detail: str | None = None,
        stage: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.message = message or self.public_message
        self.detail = detail
        self.stage = stage
        self.provider = provider
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    def headers(self) -> dict[str, str]:
        return {}

    def to_payload(self, *, expose_detail: bool = False) -> dict[str, Any]:
        """Render the `{error, message}` body; internal detail only on request."""

        message = self.message
        if expose_detail and self.detail:
            message = f"{message} ({self.detail})"
        return {"error": self.code, "message": message}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, "
            f"stage={self.stage!r}, provider={self.provider!r})"
        )


class ValidationFailed(PipelineError):
    """Bad caller input: size, format, duration, empty speech, text too long."""

    kind = ErrorKind.VALIDATION
    status_code = 400
    public_message = "Invalid request"

    def to_payload(self, *, expose_detail: bool = False) -> dict[str, Any]:
        # Validation messages are written for the caller and always shown.
        return {"error": self.code, "message": self.message}


class Unauthenticated(PipelineError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    public_message = "Missing or invalid credentials"

    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class Unauthorized(PipelineError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 403
    public_message = "Not allowed to access this resource"


class SessionNotFound(PipelineError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    public_message = "Session not found"


class UpstreamError(PipelineError):
    """Failure reported by one of the three external AI providers."""

    status_code = 502
    public_message = "The AI service failed to process the request"

    def __init__(
        self,
        message: str | None = None,
        *,
        upstream_status: int | None = None,
        **kwargs: Any,
    ) -> None:
        self.upstream_status = upstream_status
        super().__init__(message, **kwargs)


class UpstreamTransient(UpstreamError):
    """Network error, timeout or 5xx from a provider; safe to retry."""

    kind = ErrorKind.UPSTREAM_TRANSIENT
    retryable = True
    public_message = "Failed to reach the AI service. Please try again."


class UpstreamRateLimited(UpstreamError):
    """429-equivalent; surfaced to the caller instead of being retried."""

    kind = ErrorKind.UPSTREAM_RATE_LIMITED
    status_code = 429
    public_message = "AI service rate limit exceeded. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, **kwargs)

    def headers(self) -> dict[str, str]:
        if self.retry_after is None:
            return {}
        return {"Retry-After": str(max(1, int(round(self.retry_after))))}


class UpstreamRejected(UpstreamError):
    """Client-class (4xx) answer from a provider; retrying cannot help."""

    kind = ErrorKind.UPSTREAM_REJECTED
    public_message = "The AI service rejected the request"


class EmptyGeneration(PipelineError):
    """Text generation returned successfully but without any text."""

    kind = ErrorKind.EMPTY_GENERATION
    status_code = 502
    public_message = "The assistant produced an empty reply"


class StorageError(PipelineError):
    kind = ErrorKind.STORAGE
    status_code = 503
    public_message = "Conversation storage is unavailable"


class PipelineTimeout(PipelineError):
    kind = ErrorKind.TIMEOUT
    status_code = 504
    public_message = "The voice conversation took too long to complete"


class InternalError(PipelineError):
    kind = ErrorKind.INTERNAL
    status_code = 500


def is_retryable(exc: BaseException) -> bool:
    """Return True when the Transient-Call Wrapper may try the call again.

    Classified errors answer for themselves. For anything else, a structural
    client-class status (4xx) is terminal, a server-class status (>=500) and
    connection/timeout errors are retryable, and unknown failures are treated
    as transient.
    """

    if isinstance(exc, PipelineError):
        return exc.retryable

    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    if isinstance(status, int):
        return not 400 <= status < 500

    return isinstance(exc, Exception)


__all__ = [
    "ErrorKind",
    "PipelineError",
    "ValidationFailed",
    "Unauthenticated",
    "Unauthorized",
    "SessionNotFound",
    "UpstreamError",
    "UpstreamTransient",
    "UpstreamRateLimited",
    "UpstreamRejected",
    "EmptyGeneration",
    "StorageError",
    "PipelineTimeout",
    "InternalError",
    "is_retryable",
]

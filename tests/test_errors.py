from __future__ import annotations

import pytest

from voice_agent.errors import (
    EmptyGeneration,
    InternalError,
    PipelineTimeout,
    StorageError,
    Unauthenticated,
    UpstreamRateLimited,
    UpstreamRejected,
    UpstreamTransient,
    ValidationFailed,
    is_retryable,
)


@pytest.mark.parametrize(
    ("error", "code", "status", "retryable"),
    [
        (ValidationFailed("bad"), "VALIDATION_ERROR", 400, False),
        (Unauthenticated(), "UNAUTHENTICATED", 401, False),
        (UpstreamTransient(), "UPSTREAM_UNAVAILABLE", 502, True),
        (UpstreamRateLimited(), "RATE_LIMIT_EXCEEDED", 429, False),
        (UpstreamRejected(), "UPSTREAM_REJECTED", 502, False),
        (EmptyGeneration(), "EMPTY_GENERATION", 502, False),
        (StorageError(), "STORAGE_ERROR", 503, False),
        (PipelineTimeout(), "TIMEOUT", 504, False),
        (InternalError(), "INTERNAL_SERVER_ERROR", 500, False),
    ],
)
def test_error_classification(error, code, status, retryable):
    assert error.code == code
    assert error.status_code == status
    assert is_retryable(error) is retryable


def test_payload_hides_internal_detail_by_default():
    error = UpstreamTransient(detail="ServiceUnavailable: raw provider text")

    assert error.to_payload() == {
        "error": "UPSTREAM_UNAVAILABLE",
        "message": UpstreamTransient.public_message,
    }
    assert "raw provider text" in error.to_payload(expose_detail=True)["message"]


def test_validation_message_is_shown_to_caller():
    error = ValidationFailed("File size exceeds 25MB limit", detail="internal")

    assert error.to_payload() == {
        "error": "VALIDATION_ERROR",
        "message": "File size exceeds 25MB limit",
    }


def test_rate_limit_carries_retry_after_header():
    assert UpstreamRateLimited(retry_after=2.4).headers() == {"Retry-After": "2"}
    assert UpstreamRateLimited().headers() == {}


def test_plain_exceptions_follow_status_attribute():
    class WithStatus(Exception):
        def __init__(self, status):
            super().__init__(status)
            self.status = status

    assert is_retryable(WithStatus(503)) is True
    assert is_retryable(WithStatus(422)) is False
    assert is_retryable(ConnectionResetError()) is True

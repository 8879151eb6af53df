"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    PIPELINE_FAILURES,
    PROVIDER_ATTEMPTS,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    STAGE_LATENCY,
    increment_pipeline_failure,
    observe_provider_attempt,
    observe_request,
    observe_stage,
)

__all__ = [
    "ERROR_COUNTER",
    "PIPELINE_FAILURES",
    "PROVIDER_ATTEMPTS",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "STAGE_LATENCY",
    "increment_pipeline_failure",
    "observe_provider_attempt",
    "observe_request",
    "observe_stage",
]

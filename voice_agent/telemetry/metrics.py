"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
        60.0,
        120.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

STAGE_LATENCY = Histogram(
    "voice_pipeline_stage_duration_seconds",
    "Time spent in each voice pipeline stage",
    ("stage",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 80.0),
)

PIPELINE_FAILURES = Counter(
    "voice_pipeline_failures_total",
    "Voice conversation turns that ended in a failure state",
    ("stage", "code"),
)

PROVIDER_ATTEMPTS = Counter(
    "voice_provider_attempts_total",
    "Individual attempts made against external AI providers",
    ("provider", "outcome"),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def observe_stage(stage: str, duration_seconds: float) -> None:
    STAGE_LATENCY.labels(stage=stage).observe(max(0.0, duration_seconds))


def increment_pipeline_failure(stage: str, code: str) -> None:
    PIPELINE_FAILURES.labels(stage=stage, code=code).inc()


def observe_provider_attempt(provider: str, outcome: str) -> None:
    """Count one provider attempt by outcome (success/retryable/terminal/timeout)."""

    PROVIDER_ATTEMPTS.labels(provider=provider or "unknown", outcome=outcome).inc()

"""Shared AWS helpers for service clients."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from voice_agent.config.settings import settings
from voice_agent.errors import (
    PipelineError,
    UpstreamRateLimited,
    UpstreamRejected,
    UpstreamTransient,
)

_THROTTLING_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "TooManyRequestsException",
        "LimitExceededException",
        "ServiceQuotaExceededException",
    }
)


def create_boto3_client(
    service_name: str,
    *,
    region_name: str | None = None,
    read_timeout: float | None = None,
) -> Any:
    """Instantiate a boto3 client with SDK retries disabled.

    Retry policy lives in :mod:`voice_agent.services.retry`; letting botocore
    retry as well would multiply the attempt count.
    """

    client_kwargs: dict[str, Any] = {
        "region_name": region_name or settings.aws.region,
        "config": Config(
            connect_timeout=5,
            read_timeout=read_timeout or settings.pipeline.call_timeout_seconds,
            retries={"max_attempts": 0, "mode": "standard"},
        ),
    }
    if settings.aws.access_key_id and settings.aws.secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.aws.access_key_id
        client_kwargs["aws_secret_access_key"] = (
            settings.aws.secret_access_key.get_secret_value()
        )
    return boto3.client(service_name, **client_kwargs)


def _retry_after_seconds(response: dict[str, Any]) -> float | None:
    headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {}) or {}
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def classify_aws_error(
    exc: BaseException,
    *,
    provider: str,
    stage: str,
) -> PipelineError:
    """Map a botocore failure onto the pipeline error taxonomy.

    Classification is driven by the HTTP status and error code botocore
    attaches to the exception, never by message text.
    """

    if isinstance(exc, PipelineError):
        return exc

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {}) or {}
        code = error.get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        detail = f"{code}: {error.get('Message', '')}".strip(": ")
        if status == 429 or code in _THROTTLING_CODES:
            return UpstreamRateLimited(
                detail=detail,
                upstream_status=status,
                retry_after=_retry_after_seconds(exc.response),
                stage=stage,
                provider=provider,
            )
        if isinstance(status, int) and 400 <= status < 500:
            return UpstreamRejected(
                detail=detail, upstream_status=status, stage=stage, provider=provider
            )
        return UpstreamTransient(
            detail=detail, upstream_status=status, stage=stage, provider=provider
        )

    # Connection resets, connect/read timeouts and other transport faults.
    return UpstreamTransient(detail=repr(exc), stage=stage, provider=provider)


__all__ = ["create_boto3_client", "classify_aws_error"]

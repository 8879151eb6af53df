"""Transient-Call Wrapper: the single place provider retry policy is defined.

Every external provider call (transcription, generation, synthesis) goes
through :func:`call_with_retries`. A call is attempted up to
``max_retries + 1`` times. Terminal failures (client-class, 4xx-equivalent)
are re-raised immediately; retryable failures (network, timeout, >=500) are
retried after ``2 ** attempt`` seconds until the attempts run out, at which
point the last error is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from voice_agent.errors import UpstreamTransient, is_retryable
from voice_agent.telemetry import observe_provider_attempt

logger = logging.getLogger("voice_agent.pipeline")

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2

SleepFn = Callable[[float], Awaitable[None]]


def _log_before_sleep(label: str, max_retries: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Retry %s/%s for %s in %.0fs: %r",
            retry_state.attempt_number,
            max_retries,
            label,
            delay,
            exc,
        )

    return _before_sleep


async def _attempt(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float | None,
    label: str,
    stage: str | None,
    provider: str | None,
) -> T:
    try:
        if timeout is None:
            result = await operation()
        else:
            result = await asyncio.wait_for(operation(), timeout)
    except (asyncio.TimeoutError, TimeoutError) as exc:
        # Also reached when the operation itself raises TimeoutError.
        observe_provider_attempt(provider or label, "timeout")
        if timeout is None:
            detail = f"{label} timed out: {exc!r}"
        else:
            detail = f"{label} timed out after {timeout:.0f}s"
        raise UpstreamTransient(
            detail=detail,
            stage=stage,
            provider=provider,
        ) from exc
    except Exception as exc:
        observe_provider_attempt(
            provider or label, "retryable" if is_retryable(exc) else "terminal"
        )
        raise
    observe_provider_attempt(provider or label, "success")
    return result


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    timeout: float | None = None,
    label: str = "provider call",
    stage: str | None = None,
    provider: str | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run ``operation`` under the bounded retry-with-backoff policy.

    ``timeout`` bounds each individual attempt, so one slow provider cannot
    burn the whole request deadline across its retries. A timed-out attempt
    counts as a retryable :class:`UpstreamTransient` failure.
    """

    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=1, exp_base=2, min=0, max=60),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep(label, max_retries),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await _attempt(
                operation,
                timeout=timeout,
                label=label,
                stage=stage,
                provider=provider,
            )
    return result


__all__ = ["call_with_retries", "DEFAULT_MAX_RETRIES"]

"""State machine for one voice conversation turn.

Canonical order::

    Validating -> Transcoding -> Resolving -> Transcribing -> Generating
        -> Synthesizing -> Persisting -> Cleaning -> Done

``Failed`` is reachable from any working state and short-circuits the rest of
the turn, but ``Cleaning`` still runs afterwards. There is no retry at this
level: each provider client retries internally and a failed transition is
final for the invocation.
"""

from __future__ import annotations

import logging
import time
from enum import Enum

from voice_agent.errors import PipelineError
from voice_agent.telemetry import increment_pipeline_failure, observe_stage

logger = logging.getLogger("voice_agent.pipeline")


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    TRANSCODING = "transcoding"
    RESOLVING = "resolving"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    SYNTHESIZING = "synthesizing"
    PERSISTING = "persisting"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


WORKING_STAGES: tuple[PipelineStage, ...] = (
    PipelineStage.VALIDATING,
    PipelineStage.TRANSCODING,
    PipelineStage.RESOLVING,
    PipelineStage.TRANSCRIBING,
    PipelineStage.GENERATING,
    PipelineStage.SYNTHESIZING,
    PipelineStage.PERSISTING,
)


class InvalidTransition(RuntimeError):
    """Raised when code tries to move the turn out of canonical order."""


class TurnStateMachine:
    """Track the current stage of one turn and enforce legal transitions."""

    def __init__(self, turn_id: str | None = None) -> None:
        self.turn_id = turn_id
        self.current: PipelineStage | None = None
        self.history: list[PipelineStage] = []
        self.error: PipelineError | None = None
        self.failed_stage: PipelineStage | None = None
        self.cancelled = False
        self._entered_at = time.perf_counter()

    @property
    def failed(self) -> bool:
        return self.error is not None or self.cancelled

    def _close_current(self) -> None:
        if self.current in WORKING_STAGES or self.current is PipelineStage.CLEANING:
            observe_stage(self.current.value, time.perf_counter() - self._entered_at)

    def _move(self, stage: PipelineStage) -> None:
        self._close_current()
        self.current = stage
        self.history.append(stage)
        self._entered_at = time.perf_counter()
        logger.debug("turn=%s stage=%s", self.turn_id, stage.value)

    def enter(self, stage: PipelineStage) -> None:
        """Advance to the next working stage."""

        if stage not in WORKING_STAGES:
            raise InvalidTransition(f"{stage.value} is not a working stage")
        if self.failed or self.current in (PipelineStage.CLEANING, PipelineStage.DONE):
            raise InvalidTransition(f"cannot enter {stage.value} after {self.current}")
        expected_index = (
            0 if self.current is None else WORKING_STAGES.index(self.current) + 1
        )
        if WORKING_STAGES.index(stage) != expected_index:
            raise InvalidTransition(
                f"cannot enter {stage.value} from {self.current and self.current.value}"
            )
        self._move(stage)

    def fail(self, error: PipelineError) -> None:
        """Record the terminal failure; later stages are skipped."""

        if self.failed:
            return
        self.failed_stage = self.current
        self.error = error
        stage_label = self.current.value if self.current else "intake"
        if error.stage is None:
            error.stage = stage_label
        increment_pipeline_failure(stage_label, error.code)
        self._move(PipelineStage.FAILED)

    def cancel(self) -> None:
        """Record that the caller went away mid-turn."""

        if self.failed:
            return
        self.failed_stage = self.current
        self.cancelled = True
        self._move(PipelineStage.FAILED)

    def clean(self) -> None:
        if self.current is not PipelineStage.CLEANING:
            self._move(PipelineStage.CLEANING)

    def finish(self) -> None:
        """Close the turn after cleanup; only a successful turn reaches Done."""

        if self.current is not PipelineStage.CLEANING:
            raise InvalidTransition("cleanup must run before the turn finishes")
        self._close_current()
        if not self.failed:
            self.current = PipelineStage.DONE
            self.history.append(PipelineStage.DONE)


__all__ = ["PipelineStage", "TurnStateMachine", "InvalidTransition", "WORKING_STAGES"]

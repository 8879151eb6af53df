"""Sequencing of one voice conversation turn.

``VoiceConversationPipeline.run`` drives the stages documented in ``flow``:
it validates and normalizes the upload, resolves the session and its context
in parallel, then transcribes, generates, synthesizes and persists. The whole
turn runs under one deadline and every temporary file it created is removed
before ``run`` returns or raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from uuid import UUID, uuid4

from voice_agent.config.settings import Settings, settings as default_settings
from voice_agent.database import Database
from voice_agent.errors import (
    InternalError,
    PipelineError,
    PipelineTimeout,
    StorageError,
    ValidationFailed,
)
from voice_agent.services.llm_client import BedrockLlmClient
from voice_agent.services.speech import PollySpeechService
from voice_agent.services.transcribe import TranscribeService, get_transcribe_service

from .artifacts import ArtifactScope
from .context import ContextLoader
from .flow import PipelineStage, TurnStateMachine
from .generation import ResponseGenerator
from .ingestion import AudioValidator, resolve_media_type
from .persistence import TurnRecorder
from .sessions import SessionResolver, parse_session_id
from .synthesis import SpeechSynthesizer
from .transcoding import AudioTranscoder
from .transcription import TranscriptionClient
from .types import AudioUpload, ChatMessage, Owner, TurnResult

logger = logging.getLogger("voice_agent.pipeline")

NO_SPEECH_MESSAGE = "No speech detected in audio"


class VoiceConversationPipeline:
    def __init__(
        self,
        *,
        validator: AudioValidator,
        transcoder: AudioTranscoder,
        sessions: SessionResolver,
        context: ContextLoader,
        transcriber: TranscriptionClient,
        generator: ResponseGenerator,
        synthesizer: SpeechSynthesizer,
        recorder: TurnRecorder,
        deadline_seconds: float = 110.0,
        context_limit: int | None = None,
        temp_dir: str | None = None,
    ) -> None:
        self.validator = validator
        self.transcoder = transcoder
        self.sessions = sessions
        self.context = context
        self.transcriber = transcriber
        self.generator = generator
        self.synthesizer = synthesizer
        self.recorder = recorder
        self.deadline_seconds = deadline_seconds
        self.context_limit = context_limit
        self.temp_dir = temp_dir

    @classmethod
    def from_settings(
        cls,
        database: Database,
        config: Settings = default_settings,
        *,
        transcribe_service: TranscribeService | None = None,
        llm_client: BedrockLlmClient | None = None,
        speech_service: PollySpeechService | None = None,
    ) -> "VoiceConversationPipeline":
        """Wire the production pipeline from settings and one shared database."""

        pipeline_cfg = config.pipeline
        return cls(
            validator=AudioValidator.from_config(config.audio),
            transcoder=AudioTranscoder.from_config(config.audio),
            sessions=SessionResolver(database),
            context=ContextLoader(
                database,
                default_limit=pipeline_cfg.context_limit,
                max_limit=pipeline_cfg.context_limit_cap,
            ),
            transcriber=TranscriptionClient(
                transcribe_service or get_transcribe_service(),
                max_retries=pipeline_cfg.max_retries,
                timeout=pipeline_cfg.transcription_timeout_seconds,
                sample_rate_hz=config.transcribe.sample_rate_hz,
            ),
            generator=ResponseGenerator.from_config(
                llm_client or BedrockLlmClient(),
                config.bedrock,
                max_retries=pipeline_cfg.max_retries,
                timeout=pipeline_cfg.call_timeout_seconds,
            ),
            synthesizer=SpeechSynthesizer(
                speech_service or PollySpeechService(),
                max_characters=config.polly.max_characters,
                max_retries=pipeline_cfg.max_retries,
                timeout=pipeline_cfg.call_timeout_seconds,
            ),
            recorder=TurnRecorder(database),
            deadline_seconds=pipeline_cfg.deadline_seconds,
            context_limit=pipeline_cfg.context_limit,
            temp_dir=config.audio.temp_dir,
        )

    async def run(
        self,
        owner: Owner,
        upload: AudioUpload,
        session_id: str | UUID | None = None,
    ) -> TurnResult:
        """Process one uploaded utterance and return the spoken reply.

        Raises a classified :class:`PipelineError` on failure. Temporary files
        are removed on every exit path, including cancellation.
        """

        machine = TurnStateMachine(uuid4().hex[:12])
        started = time.perf_counter()
        try:
            with ArtifactScope(self.temp_dir) as scope:
                try:
                    return await asyncio.wait_for(
                        self._execute(machine, scope, owner, upload, session_id),
                        timeout=self.deadline_seconds,
                    )
                except asyncio.TimeoutError as exc:
                    error = PipelineTimeout(
                        detail=f"turn exceeded {self.deadline_seconds:g}s",
                        stage=machine.current.value if machine.current else None,
                    )
                    machine.fail(error)
                    raise error from exc
                except PipelineError as exc:
                    machine.fail(exc)
                    raise
                except asyncio.CancelledError:
                    machine.cancel()
                    raise
                except Exception as exc:
                    logger.exception("Unexpected failure in turn %s", machine.turn_id)
                    error = InternalError(detail=repr(exc))
                    machine.fail(error)
                    raise error from exc
                finally:
                    machine.clean()
        finally:
            machine.finish()
            elapsed = time.perf_counter() - started
            if machine.cancelled:
                logger.warning(
                    "Turn %s cancelled during %s after %.2fs",
                    machine.turn_id,
                    machine.failed_stage and machine.failed_stage.value,
                    elapsed,
                )
            elif machine.failed:
                logger.warning(
                    "Turn %s failed at %s after %.2fs: %r",
                    machine.turn_id,
                    machine.error.stage,
                    elapsed,
                    machine.error,
                )
            else:
                logger.info("Turn %s finished in %.2fs", machine.turn_id, elapsed)

    async def _load_history(
        self, owner: Owner, requested: UUID | None
    ) -> list[ChatMessage]:
        if requested is None:
            return []
        return await self.context.load(
            requested, self.context_limit, owner_id=owner.owner_id
        )

    async def _resolve_with_history(
        self, owner: Owner, requested: UUID | None
    ) -> tuple[UUID, list[ChatMessage]]:
        """Resolve the session and load its history concurrently.

        The first failure cancels the sibling branch and is awaited before
        re-raising, so nothing from a failed turn keeps touching the store.
        """

        resolving = asyncio.create_task(self.sessions.resolve(owner.owner_id, requested))
        loading = asyncio.create_task(self._load_history(owner, requested))
        branches = (resolving, loading)
        try:
            done, _ = await asyncio.wait(branches, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in branches:
                task.cancel()
            await asyncio.gather(*branches, return_exceptions=True)

        for task in branches:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return resolving.result(), loading.result()

    async def _execute(
        self,
        machine: TurnStateMachine,
        scope: ArtifactScope,
        owner: Owner,
        upload: AudioUpload,
        session_id: str | UUID | None,
    ) -> TurnResult:
        machine.enter(PipelineStage.VALIDATING)
        media_type = resolve_media_type(upload.media_type, upload.filename)
        artifact = await scope.write(upload.data, filename=upload.filename)
        validation = await self.validator.validate(artifact, media_type)
        if not validation.valid:
            raise ValidationFailed(validation.reason)

        machine.enter(PipelineStage.TRANSCODING)
        prepared = await self.transcoder.prepare(artifact, media_type, scope)

        machine.enter(PipelineStage.RESOLVING)
        requested = parse_session_id(session_id)
        resolved_id, history = await self._resolve_with_history(owner, requested)
        if resolved_id != requested:
            # A replacement session starts without history.
            history = []

        machine.enter(PipelineStage.TRANSCRIBING)
        transcript = await self.transcriber.transcribe(prepared)
        scope.discard(prepared.path)
        if not transcript:
            raise ValidationFailed(NO_SPEECH_MESSAGE)

        machine.enter(PipelineStage.GENERATING)
        reply = await self.generator.generate(transcript, history)

        machine.enter(PipelineStage.SYNTHESIZING)
        speech = await self.synthesizer.synthesize(reply)

        machine.enter(PipelineStage.PERSISTING)
        persisted, storage_error = True, None
        try:
            await self.recorder.record(resolved_id, transcript, reply)
        except StorageError as exc:
            # The reply has already been produced; hand it back and flag the loss.
            logger.error("Turn %s not persisted for session %s: %r", machine.turn_id, resolved_id, exc)
            persisted, storage_error = False, exc.code

        return TurnResult(
            session_id=resolved_id,
            transcript=transcript,
            reply=reply,
            audio=speech.audio_bytes,
            media_type=speech.media_type,
            persisted=persisted,
            storage_error=storage_error,
        )


__all__ = ["VoiceConversationPipeline", "NO_SPEECH_MESSAGE"]

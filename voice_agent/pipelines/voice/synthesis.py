"""Speech synthesis stage (text to mp3 via Amazon Polly)."""

from __future__ import annotations

import asyncio

from voice_agent.errors import ValidationFailed
from voice_agent.services.retry import DEFAULT_MAX_RETRIES, SleepFn, call_with_retries
from voice_agent.services.speech import PROVIDER, PollySpeechService, SpeechResult

DEFAULT_MAX_CHARACTERS = 4096


class SpeechSynthesizer:
    def __init__(
        self,
        speech_service: PollySpeechService,
        *,
        max_characters: int = DEFAULT_MAX_CHARACTERS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._speech = speech_service
        self.max_characters = max_characters
        self.max_retries = max_retries
        self.timeout = timeout
        self._sleep = sleep

    def check_text(self, text: str, *, stage: str = "synthesizing") -> str:
        """Reject text the provider would refuse, before any call is made."""

        if not text or not text.strip():
            raise ValidationFailed("Text is required for speech synthesis", stage=stage)
        if len(text) > self.max_characters:
            raise ValidationFailed(
                f"Text exceeds {self.max_characters} character limit ({len(text)} chars)",
                stage=stage,
            )
        return text

    async def synthesize(self, text: str, *, stage: str = "synthesizing") -> SpeechResult:
        text = self.check_text(text, stage=stage)
        return await call_with_retries(
            lambda: self._speech.synthesize(text, stage=stage),
            max_retries=self.max_retries,
            timeout=self.timeout,
            label="speech synthesis",
            stage=stage,
            provider=PROVIDER,
            sleep=self._sleep,
        )


__all__ = ["SpeechSynthesizer", "DEFAULT_MAX_CHARACTERS"]

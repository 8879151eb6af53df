"""Response generation stage: prompt assembly plus the Bedrock call."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from voice_agent.config.settings import BedrockConfig
from voice_agent.errors import EmptyGeneration
from voice_agent.services.llm_client import PROVIDER, BedrockLlmClient
from voice_agent.services.retry import DEFAULT_MAX_RETRIES, SleepFn, call_with_retries

from .types import ChatMessage

logger = logging.getLogger("voice_agent.pipeline")

DEFAULT_HISTORY_WINDOW = 10


def build_prompt(
    system_prompt: str,
    utterance: str,
    history: Sequence[ChatMessage],
    *,
    history_window: int = DEFAULT_HISTORY_WINDOW,
) -> list[ChatMessage]:
    """Return ``[system] + last N history entries + [new user utterance]``."""

    recent = list(history)[-history_window:] if history_window > 0 else []
    return [
        {"role": "system", "content": system_prompt},
        *({"role": entry["role"], "content": entry["content"]} for entry in recent),
        {"role": "user", "content": utterance},
    ]


class ResponseGenerator:
    def __init__(
        self,
        llm_client: BedrockLlmClient,
        *,
        system_prompt: str,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        max_tokens: int = 500,
        temperature: float = 0.7,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._llm = llm_client
        self.system_prompt = system_prompt
        self.history_window = history_window
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        llm_client: BedrockLlmClient,
        config: BedrockConfig,
        **kwargs,
    ) -> "ResponseGenerator":
        return cls(
            llm_client,
            system_prompt=config.system_prompt,
            history_window=config.history_window,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            **kwargs,
        )

    async def generate(
        self,
        utterance: str,
        history: Sequence[ChatMessage] = (),
        *,
        stage: str = "generating",
    ) -> str:
        """Produce the assistant reply for ``utterance``.

        Provider failures are retried by the shared policy. A successful call
        that returns no text raises :class:`EmptyGeneration`.
        """

        prompt = build_prompt(
            self.system_prompt,
            utterance,
            history,
            history_window=self.history_window,
        )
        system, conversation = prompt[0], prompt[1:]

        reply = await call_with_retries(
            lambda: self._llm.converse(
                system_prompt=system["content"],
                messages=conversation,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stage=stage,
            ),
            max_retries=self.max_retries,
            timeout=self.timeout,
            label="response generation",
            stage=stage,
            provider=PROVIDER,
            sleep=self._sleep,
        )
        reply = (reply or "").strip()
        if not reply:
            raise EmptyGeneration(stage=stage, provider=PROVIDER)
        logger.info("Generated reply (%s chars) from %s history entries", len(reply), len(conversation) - 1)
        return reply


__all__ = ["ResponseGenerator", "build_prompt", "DEFAULT_HISTORY_WINDOW"]

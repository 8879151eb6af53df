"""Thin Bedrock client wrapper for conversational LLM invocations."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from fastapi.concurrency import run_in_threadpool

from voice_agent.config.settings import settings
from voice_agent.services.aws import classify_aws_error, create_boto3_client

logger = logging.getLogger(__name__)

PROVIDER = "amazon-bedrock"


def to_converse_messages(
    history: Sequence[Mapping[str, str]],
) -> list[dict[str, Any]]:
    """Shape role/content pairs into Bedrock ``converse`` messages.

    Bedrock requires the conversation to open with a user turn and to
    alternate speakers, so leading assistant turns are dropped and
    consecutive turns from the same speaker are merged. System entries are
    carried separately by the caller.
    """

    messages: list[dict[str, Any]] = []
    for entry in history:
        role = entry.get("role")
        text = (entry.get("content") or "").strip()
        if role not in ("user", "assistant") or not text:
            continue
        if not messages and role != "user":
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"][0]["text"] += "\n" + text
            continue
        messages.append({"role": role, "content": [{"text": text}]})
    return messages


class BedrockLlmClient:
    """Invoke Amazon Bedrock models with standard configuration."""

    def __init__(self, client: Any | None = None, *, model_id: str | None = None) -> None:
        self._model_id = model_id or settings.bedrock.model_id
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = create_boto3_client(
                "bedrock-runtime",
                read_timeout=settings.pipeline.call_timeout_seconds,
            )
        return self._client

    async def converse(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Mapping[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        stage: str = "generating",
    ) -> str:
        """Run a Bedrock ``converse`` call and return the aggregate text output.

        Returns an empty string when the model answered without text; any
        provider failure is raised already classified.
        """

        inference_cfg = {
            "maxTokens": max_tokens or settings.bedrock.max_tokens,
            "temperature": (
                temperature
                if temperature is not None
                else settings.bedrock.temperature
            ),
        }
        converse_messages = to_converse_messages(messages)

        def _call() -> str:
            response = self._get_client().converse(
                modelId=self._model_id,
                system=[{"text": system_prompt}],
                messages=converse_messages,
                inferenceConfig=inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            return "\n".join(texts).strip()

        try:
            return await run_in_threadpool(_call)
        except Exception as exc:
            logger.error("Bedrock converse failed model=%s: %r", self._model_id, exc)
            raise classify_aws_error(exc, provider=PROVIDER, stage=stage) from exc


__all__ = ["BedrockLlmClient", "to_converse_messages"]

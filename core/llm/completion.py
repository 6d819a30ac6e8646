"""Text-completion client used for classification, questions and conversation."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Protocol

from openai import OpenAI, OpenAIError

from core.config.settings import LlmSettings
from core.utils.errors import UpstreamServiceError

logger = logging.getLogger("docfill.llm")

ChatMessage = dict[str, str]


class CompletionClient(Protocol):
    """Anything that turns prompts into text; failures raise ``UpstreamServiceError``."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the completion for one system + user prompt pair."""

    def chat(self, messages: Sequence[ChatMessage]) -> str:
        """Return the assistant reply for a role/content transcript."""


class OpenAICompletionClient:
    """Chat-completions backed client."""

    def __init__(self, client: OpenAI, *, model: str, temperature: float) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        return self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ]
        )

    def chat(self, messages: Sequence[ChatMessage]) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=[dict(message) for message in messages],  # type: ignore[misc]
            )
        except OpenAIError as exc:
            logger.warning("completion request failed: %s", exc)
            raise UpstreamServiceError(
                "text-completion request failed",
                detail={"error": type(exc).__name__},
            ) from exc

        choices = completion.choices or []
        content = choices[0].message.content if choices else None
        if not content:
            raise UpstreamServiceError("text-completion service returned no content")
        return content


def build_completion_client(settings: LlmSettings) -> OpenAICompletionClient | None:
    """Build a client from ``OPENAI_*`` env vars; ``None`` when no API key is set."""

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    model = os.getenv("OPENAI_MODEL") or settings.model
    base_url = os.getenv("OPENAI_BASE_URL")
    if base_url:
        client = OpenAI(api_key=api_key, base_url=base_url)
    else:
        client = OpenAI(api_key=api_key)
    return OpenAICompletionClient(client, model=model, temperature=settings.temperature)

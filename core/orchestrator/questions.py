"""Prompts for collecting placeholder values from the user."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from core.llm.completion import ChatMessage, CompletionClient
from core.templates.models import Placeholder
from core.utils.errors import UpstreamServiceError

logger = logging.getLogger("docfill.workflow")

_CONTEXT_PROMPT_LIMIT = 600
_ALLOWED_ROLES = frozenset({"user", "assistant"})

QUESTION_SYSTEM_PROMPT = "\n".join(
    [
        "You help a user fill in a legal document template.",
        "Write ONE short, friendly question asking for the value of the placeholder.",
        "Use the surrounding text to say what kind of value is expected.",
        "Reply with the question only.",
    ]
)


def static_question(placeholder: Placeholder) -> str:
    return f"Please provide a value for {placeholder.label}."


def generate_question(
    placeholder: Placeholder,
    client: CompletionClient | None,
    *,
    use_llm: bool = True,
) -> str:
    """Ask the completion service for a question; fall back to a fixed wording."""

    if client is None or not use_llm:
        return static_question(placeholder)

    lines = [f"Placeholder: {placeholder.label} (id: {placeholder.id})"]
    if placeholder.context:
        lines.append(f"Surrounding text: {placeholder.context[:_CONTEXT_PROMPT_LIMIT]}")

    try:
        question = client.complete(QUESTION_SYSTEM_PROMPT, "\n".join(lines)).strip()
    except UpstreamServiceError as exc:
        logger.warning("question generation failed for %s: %s", placeholder.id, exc)
        return static_question(placeholder)
    return question or static_question(placeholder)


def build_conversation_messages(
    placeholder: Placeholder, messages: Iterable[Mapping[str, object]]
) -> list[ChatMessage]:
    """System prompt for one placeholder followed by the caller's user/assistant turns."""

    system_lines = [
        "You are a helpful assistant for legal document drafting.",
        "Gather precise information from the user to fill in the placeholder provided.",
        "Produce concise answers suitable for direct insertion into the document.",
        f"Placeholder: {placeholder.id}",
    ]
    if placeholder.context:
        system_lines.append(f"Context: {placeholder.context}")

    chat: list[ChatMessage] = [{"role": "system", "content": "\n".join(system_lines)}]
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role in _ALLOWED_ROLES and isinstance(content, str):
            chat.append({"role": str(role), "content": content})
    return chat

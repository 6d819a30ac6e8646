"""Defensive parsing of placeholder candidates from free-text model output."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)


@dataclass(frozen=True)
class PlaceholderCandidate:
    """One placeholder suggestion as returned by the model, not yet reconciled."""

    raw: str
    id: str | None = None
    label: str | None = None
    type: str | None = None
    context: str | None = None


@dataclass
class ParsedCandidates:
    candidates: list[PlaceholderCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_candidates(response_text: str) -> ParsedCandidates:
    """Parse a model response into candidates. Never raises.

    Tries, in order: the whole text as JSON (an array, or an object holding a
    ``placeholders`` array), then the first ``[`` ... last ``]`` span.
    """

    payload = _load_json(response_text)
    if payload is None:
        match = _ARRAY_RE.search(response_text or "")
        if match is not None:
            payload = _load_json(match.group(0))

    if isinstance(payload, dict):
        payload = payload.get("placeholders")

    if not isinstance(payload, list):
        return ParsedCandidates(error="response did not contain a JSON array")

    candidates: list[PlaceholderCandidate] = []
    dropped = 0
    for item in payload:
        candidate = _to_candidate(item)
        if candidate is None:
            dropped += 1
            continue
        candidates.append(candidate)

    return ParsedCandidates(
        candidates=candidates,
        error=None if candidates or not dropped else "no candidate carried a raw token",
    )


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _to_candidate(item: object) -> PlaceholderCandidate | None:
    if not isinstance(item, dict):
        return None
    raw = item.get("raw")
    if not isinstance(raw, str) or not raw.strip():
        return None
    return PlaceholderCandidate(
        raw=raw.strip(),
        id=_optional_str(item.get("id")),
        label=_optional_str(item.get("label")),
        type=_optional_str(item.get("type")),
        context=_optional_str(item.get("context")),
    )


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None

"""LLM-assisted placeholder discovery.

The model proposes candidates; everything it returns is reconciled into the same
``Placeholder``/``PlaceholderMetadata`` shape the regex extractor produces, using the
same id allocation rules.
"""

from __future__ import annotations

import logging
from collections import Counter

from core.llm.completion import CompletionClient
from core.render.xml_pattern import (
    build_curly_pattern,
    build_pattern,
    compile_pattern,
    token_key,
)
from core.templates.identifiers import IdAllocator, humanize_label
from core.templates.models import (
    DiscoveryResult,
    Placeholder,
    PlaceholderMetadata,
    PlaceholderType,
)
from core.templates.normalizer import (
    DEFAULT_CONTEXT_WINDOW,
    collapse_whitespace,
    context_snippet,
)
from core.templates.placeholder_parser import CURLY_RE, DOLLAR_RE
from core.templates.response_parser import PlaceholderCandidate, parse_candidates

logger = logging.getLogger("docfill.discovery")

DEFAULT_CHAR_BUDGET = 6000

SYSTEM_PROMPT = "\n".join(
    [
        "You identify fill-in placeholders in legal document templates.",
        "Placeholders look like {{ name }} or $[ text ] and $[____] blanks.",
        "Return ONLY a JSON array. Each element is an object with keys:",
        '  "id": short snake_case identifier,',
        '  "label": human-readable name of the value to collect,',
        '  "raw": the exact token text as it appears in the document,',
        '  "type": "curly" for {{ }} tokens or "dollar" for $[ ] tokens,',
        '  "context": a short excerpt of the surrounding sentence.',
        "List every $[ ] occurrence separately, in document order.",
        "List each distinct {{ }} name once.",
    ]
)


def classify_placeholders(
    text: str,
    client: CompletionClient,
    *,
    char_budget: int = DEFAULT_CHAR_BUDGET,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
) -> DiscoveryResult:
    """Ask the completion service for placeholders and reconcile its answer.

    Raises:
        UpstreamServiceError: when the completion call itself fails.
    """

    user_prompt = "Document text:\n\n" + text[:char_budget]
    response = client.complete(SYSTEM_PROMPT, user_prompt)

    parsed = parse_candidates(response)
    if not parsed.ok:
        logger.warning("classifier response unusable: %s", parsed.error)
    return reconcile_candidates(parsed.candidates, text, context_window=context_window)


def reconcile_candidates(
    candidates: list[PlaceholderCandidate],
    text: str,
    *,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
) -> DiscoveryResult:
    """Turn raw model candidates into placeholders with unique ids.

    Candidates whose ``raw`` does not occur in ``text`` are dropped. Curly candidates
    are deduplicated by inner name. Dollar candidates are numbered per token in the
    order given; a number beyond the token's count in the text is left unset, which
    makes replacement global for that placeholder.
    """

    allocator = IdAllocator()
    result = DiscoveryResult(source="llm")
    seen_curly: set[str] = set()
    dollar_seen: Counter[str] = Counter()
    dollar_available = Counter(token_key(match.group(0)) for match in DOLLAR_RE.finditer(text))

    for candidate in candidates:
        raw = candidate.raw
        placeholder_type = _resolve_type(candidate)
        inner = _inner_text(raw, placeholder_type)

        if placeholder_type == "curly" and CURLY_RE.fullmatch(raw):
            pattern = build_curly_pattern(inner)
        else:
            pattern = build_pattern(raw)

        first_match = compile_pattern(pattern).search(text)
        if first_match is None:
            logger.info("dropping classifier candidate not found in text: %r", raw)
            continue

        occurrence: int | None = None
        if placeholder_type == "curly":
            key = token_key(inner)
            if key in seen_curly:
                continue
            seen_curly.add(key)
        else:
            key = token_key(raw)
            dollar_seen[key] += 1
            if dollar_seen[key] <= dollar_available[key]:
                occurrence = dollar_seen[key]

        seed = candidate.id or candidate.label or inner
        placeholder_id, label = allocator.allocate(
            seed, candidate.label or humanize_label(inner or seed)
        )

        if candidate.context:
            context = collapse_whitespace(candidate.context)[: 2 * context_window + len(raw)]
        else:
            context = context_snippet(
                text, first_match.start(), first_match.end(), context_window
            )

        result.placeholders.append(Placeholder(id=placeholder_id, label=label, context=context))
        result.metadata[placeholder_id] = PlaceholderMetadata(
            type=placeholder_type,
            raw=raw,
            inner_trimmed=inner,
            xml_pattern=pattern,
            source="llm",
            occurrence=occurrence,
        )

    return result


def _resolve_type(candidate: PlaceholderCandidate) -> PlaceholderType:
    declared = (candidate.type or "").lower()
    if declared == "curly":
        return "curly"
    if declared == "dollar":
        return "dollar"
    if "$[" in candidate.raw:
        return "dollar"
    return "curly"


def _inner_text(raw: str, placeholder_type: PlaceholderType) -> str:
    regex = CURLY_RE if placeholder_type == "curly" else DOLLAR_RE
    match = regex.fullmatch(raw)
    if match is None:
        return raw.strip()
    return match.group(1).strip()

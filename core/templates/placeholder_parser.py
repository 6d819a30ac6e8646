"""Regex placeholder extractor over normalized document text.

Supported token shapes:
- ``{{ name }}``: one logical placeholder per distinct inner name, however many times
  it appears.
- ``$[ text ]`` / ``$[]``: every occurrence is its own placeholder, located
  positionally at replacement time.

Inner content never contains a newline, so tokens do not span paragraphs or line
breaks.
"""

from __future__ import annotations

import re
from collections import Counter

from core.render.xml_pattern import build_curly_pattern, build_pattern, token_key
from core.templates.identifiers import IdAllocator
from core.templates.models import DiscoveryResult, Placeholder, PlaceholderMetadata
from core.templates.normalizer import DEFAULT_CONTEXT_WINDOW, context_snippet

CURLY_RE = re.compile(r"\{\{([^{}\n]+)\}\}")
DOLLAR_RE = re.compile(r"\$\[([^\[\]\n]*)\]")


def parse_placeholders(
    text: str, context_window: int = DEFAULT_CONTEXT_WINDOW
) -> DiscoveryResult:
    """Find curly and dollar placeholders in normalized text.

    Curly tokens are allocated first so dollar tokens suffix around their ids.
    The returned placeholders are ordered by first appearance in the text.

    Args:
        text: Output of ``normalize_document_xml``.
        context_window: Characters of context kept either side of a match.

    Returns:
        DiscoveryResult with ``source="fallback"``.
    """

    allocator = IdAllocator()
    found: list[tuple[int, Placeholder, PlaceholderMetadata]] = []
    seen_curly: set[str] = set()

    for match in CURLY_RE.finditer(text):
        inner = match.group(1).strip()
        key = token_key(inner)
        if not key or key in seen_curly:
            continue
        seen_curly.add(key)

        placeholder_id, label = allocator.allocate(inner)
        found.append(
            (
                match.start(),
                Placeholder(
                    id=placeholder_id,
                    label=label,
                    context=context_snippet(text, match.start(), match.end(), context_window),
                ),
                PlaceholderMetadata(
                    type="curly",
                    raw=match.group(0),
                    inner_trimmed=inner,
                    xml_pattern=build_curly_pattern(inner),
                    source="fallback",
                ),
            )
        )

    dollar_counts: Counter[str] = Counter()
    for match in DOLLAR_RE.finditer(text):
        raw = match.group(0)
        inner = match.group(1).strip()
        dollar_counts[token_key(raw)] += 1

        placeholder_id, label = allocator.allocate(inner)
        found.append(
            (
                match.start(),
                Placeholder(
                    id=placeholder_id,
                    label=label,
                    context=context_snippet(text, match.start(), match.end(), context_window),
                ),
                PlaceholderMetadata(
                    type="dollar",
                    raw=raw,
                    inner_trimmed=inner,
                    xml_pattern=build_pattern(raw),
                    source="fallback",
                    occurrence=dollar_counts[token_key(raw)],
                ),
            )
        )

    found.sort(key=lambda item: item[0])
    result = DiscoveryResult(source="fallback")
    for _, placeholder, metadata in found:
        result.placeholders.append(placeholder)
        result.metadata[placeholder.id] = metadata
    return result

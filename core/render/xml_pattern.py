"""Whitespace- and markup-tolerant token patterns for raw document XML.

A token such as ``{{ name }}`` is frequently split by the editor into several runs,
e.g. ``{{`` / ``name`` / ``}}`` each in its own ``<w:r>``. Patterns built here put a
gap between every literal character so the token still matches as one unit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from core.utils.docx_xml import xml_escape

# Paragraph and break tags are never crossed: tokens do not span paragraphs.
_GAP = r"(?:\s|<(?!/?w:(?:p|br|cr)\b)[^>]*>)*"
# Inside a two-character delimiter (``{{``, ``}}``, ``$[``) only run markup may intervene.
_DELIMITER_GAP = r"(?:<(?!/?w:(?:p|br|cr|tab)\b)[^>]*>)*"
_OPENING_DELIMITERS = ("{{", "$[")
_CLOSING_DELIMITER = "}}"
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

_CHAR_ALTERNATIVES = {
    "&": "&(?:amp;)?",
    "<": "(?:&lt;|<)",
    ">": "(?:>|&gt;)",
    '"': '(?:"|&quot;)',
    "'": "(?:'|&apos;)",
}


def token_key(raw: str) -> str:
    """Whitespace-free form of a token; tokens with equal keys share a pattern."""

    return _WHITESPACE_RE.sub("", raw)


def build_pattern(raw: str) -> str:
    """Return a regex source matching ``raw`` with arbitrary gaps between characters.

    The two characters of a ``{{``, ``}}`` or ``$[`` delimiter may only be separated
    by run markup, never by text, so ``$ [x]`` and ``{ {x} }`` are not tokens.
    """

    key = token_key(raw)
    if not key:
        raise ValueError("cannot build a pattern for a blank token")
    pieces = [_CHAR_ALTERNATIVES.get(char, re.escape(char)) for char in key]
    gaps = [_GAP] * (len(pieces) - 1)
    if key.startswith(_OPENING_DELIMITERS) and gaps:
        gaps[0] = _DELIMITER_GAP
    if len(key) >= 4 and key.endswith(_CLOSING_DELIMITER):
        gaps[-1] = _DELIMITER_GAP

    source = pieces[0]
    for gap, piece in zip(gaps, pieces[1:]):
        source += gap + piece
    return source


def build_curly_pattern(inner: str) -> str:
    """Pattern for every spacing variant of ``{{inner}}``."""

    return build_pattern("{{" + inner + "}}")


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


@dataclass(frozen=True)
class Replacement:
    """One span of the original XML and the markup that takes its place."""

    key: str
    start: int
    end: int
    text: str


def select_matches(
    xml: str, pattern: str, occurrence: int | None = None
) -> tuple[list[re.Match[str]], int]:
    """Return the matches to replace and the total match count.

    With ``occurrence`` set only the n-th match (1-based, counted from the start of
    ``xml``) is selected; otherwise every match is.
    """

    if occurrence is not None and occurrence < 1:
        raise ValueError(f"occurrence must be >= 1, got {occurrence}")

    matches = list(compile_pattern(pattern).finditer(xml))
    if occurrence is None:
        return matches, len(matches)
    return matches[occurrence - 1 : occurrence], len(matches)


def replacement_for(match: re.Match[str], value: str, key: str = "") -> Replacement:
    """Escaped value followed by every tag inside the matched span.

    Keeping the tags leaves split runs balanced; the value takes the formatting of
    the run where the token started.
    """

    tags = "".join(_TAG_RE.findall(match.group(0)))
    return Replacement(
        key=key,
        start=match.start(),
        end=match.end(),
        text=xml_escape(value) + tags,
    )


def apply_replacements(
    xml: str, replacements: list[Replacement]
) -> tuple[str, list[Replacement], list[Replacement]]:
    """Apply non-overlapping replacements in one pass over ``xml``.

    Returns:
        (new_xml, applied, rejected) where ``rejected`` overlapped an earlier span.
    """

    applied: list[Replacement] = []
    rejected: list[Replacement] = []
    chunks: list[str] = []
    cursor = 0

    for item in sorted(replacements, key=lambda entry: (entry.start, entry.end)):
        if item.start < cursor:
            rejected.append(item)
            continue
        chunks.append(xml[cursor : item.start])
        chunks.append(item.text)
        cursor = item.end
        applied.append(item)

    if not applied:
        return xml, applied, rejected

    chunks.append(xml[cursor:])
    return "".join(chunks), applied, rejected


def replace_matches(
    xml: str, pattern: str, value: str, occurrence: int | None = None
) -> tuple[str, int, int]:
    """Replace one placeholder's matches in ``xml`` with the escaped ``value``.

    Zero matches is a no-op.

    Returns:
        (new_xml, match_count, replaced_count)
    """

    matches, match_count = select_matches(xml, pattern, occurrence)
    new_xml, applied, _ = apply_replacements(
        xml, [replacement_for(match, value) for match in matches]
    )
    return new_xml, match_count, len(applied)

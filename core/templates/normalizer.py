"""Convert WordprocessingML markup into a linear plain-text view."""

from __future__ import annotations

import re

from core.utils.docx_xml import xml_unescape

_TAB_STOPS_RE = re.compile(r"<w:tabs\b[^>]*>.*?</w:tabs>", re.DOTALL)
_PARAGRAPH_END_RE = re.compile(r"</w:p>|<w:p\b[^>]*/>")
_BREAK_RE = re.compile(r"<w:(?:br|cr)\b[^>]*/>")
_TAB_RE = re.compile(r"<w:tab\b[^>]*/>")
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_CONTEXT_WINDOW = 400


def normalize_document_xml(xml: str) -> str:
    """Return plain text for scanning and prompting.

    Paragraph ends and line breaks become ``\\n``, tab elements become ``\\t``, all
    other markup is removed and XML entities are decoded. Whitespace inside runs is
    kept as-is so token spacing survives.
    """

    text = _TAB_STOPS_RE.sub("", xml)
    text = _PARAGRAPH_END_RE.sub("\n", text)
    text = _BREAK_RE.sub("\n", text)
    text = _TAB_RE.sub("\t", text)
    text = _TAG_RE.sub("", text)
    return xml_unescape(text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def context_snippet(
    text: str, start: int, end: int, window: int = DEFAULT_CONTEXT_WINDOW
) -> str:
    """Excerpt ``window`` characters either side of a span, whitespace-collapsed."""

    lower = max(0, start - window)
    upper = min(len(text), end + window)
    return collapse_whitespace(text[lower:upper])

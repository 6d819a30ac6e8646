"""Best-effort .docx to HTML preview."""

from __future__ import annotations

import io
import logging

import mammoth

logger = logging.getLogger("docfill.preview")

STYLE_MAP = """
p[style-name='Title'] => h1:fresh
p[style-name='Heading 1'] => h2:fresh
p[style-name='Heading 2'] => h3:fresh
"""


def render_html(docx_bytes: bytes) -> str:
    """Convert a package to HTML; conversion problems yield an empty preview."""

    try:
        with io.BytesIO(docx_bytes) as buffer:
            result = mammoth.convert_to_html(buffer, style_map=STYLE_MAP)
    except Exception as exc:  # noqa: BLE001
        logger.warning("html preview failed: %s: %s", type(exc).__name__, exc)
        return ""

    for message in result.messages:
        logger.debug("mammoth %s: %s", message.type, message.message)
    return result.value.strip()

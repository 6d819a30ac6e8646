"""Placeholder id sanitizing and collision-free allocation."""

from __future__ import annotations

import re

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WORD_SPLIT_RE = re.compile(r"[\s_\-]+")


def sanitize_id(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to ``_`` and trim underscores."""

    return _NON_ALNUM_RE.sub("_", value.lower()).strip("_")


def humanize_label(value: str) -> str:
    """``client_name`` -> ``Client Name``."""

    words = [word for word in _WORD_SPLIT_RE.split(value.strip()) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)


class IdAllocator:
    """Hand out unique ids for one document.

    Named ids collide into ``base_2``, ``base_3`` ... with labels ``Label (2)`` ...;
    anonymous ids count up as ``placeholder_1``, ``placeholder_2`` ...
    """

    def __init__(self) -> None:
        self._used: set[str] = set()
        self._anonymous_counter = 0

    def named(self, base: str, label: str) -> tuple[str, str]:
        if base not in self._used:
            self._used.add(base)
            return base, label

        suffix = 2
        while f"{base}_{suffix}" in self._used:
            suffix += 1
        candidate = f"{base}_{suffix}"
        self._used.add(candidate)
        return candidate, f"{label} ({suffix})"

    def anonymous(self) -> tuple[str, str]:
        while True:
            self._anonymous_counter += 1
            candidate = f"placeholder_{self._anonymous_counter}"
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate, f"Placeholder {self._anonymous_counter}"

    def allocate(self, seed: str, label: str | None = None) -> tuple[str, str]:
        """Allocate from free text, falling back to an anonymous id when it is blank."""

        base = sanitize_id(seed)
        if not base:
            return self.anonymous()
        return self.named(base, label or humanize_label(seed))

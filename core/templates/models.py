"""Data models for placeholder discovery."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

PlaceholderType = Literal["curly", "dollar"]
DiscoverySource = Literal["fallback", "llm"]


@dataclass(frozen=True)
class Placeholder:
    """A detected dynamic slot, as exposed to callers."""

    id: str
    label: str
    context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlaceholderMetadata:
    """Replacement instructions for one placeholder id."""

    type: PlaceholderType
    raw: str
    inner_trimmed: str
    xml_pattern: str
    source: DiscoverySource
    occurrence: int | None = None


@dataclass
class DiscoveryResult:
    """Uniform output of every discovery strategy."""

    source: DiscoverySource
    placeholders: list[Placeholder] = field(default_factory=list)
    metadata: dict[str, PlaceholderMetadata] = field(default_factory=dict)

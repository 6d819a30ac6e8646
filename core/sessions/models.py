"""Per-document session state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

from core.render.models import ReplaceReport
from core.templates.models import DiscoverySource, Placeholder, PlaceholderMetadata

SessionState = Literal["uploaded", "discovering", "ready", "answering", "finalized"]


@dataclass
class QuestionnaireState:
    """Sequential questionnaire progress."""

    order: list[str]
    index: int = 0
    values: dict[str, str] = field(default_factory=dict)
    history: list[dict[str, str]] = field(default_factory=list)

    @property
    def current_id(self) -> str | None:
        if self.index < len(self.order):
            return self.order[self.index]
        return None

    @property
    def done(self) -> bool:
        return self.index >= len(self.order)

    def skip_answered(self) -> None:
        """Move the index past placeholders that already hold a non-empty value."""

        while not self.done and self.values.get(self.order[self.index], "").strip():
            self.index += 1


@dataclass
class DocumentSession:
    """One uploaded document. Placeholders and metadata never change after upload."""

    document_id: str
    filename: str
    original_bytes: bytes
    preview_html: str = ""
    normalized_text: str = ""
    state: SessionState = "uploaded"
    discovery_source: DiscoverySource | None = None
    placeholders: list[Placeholder] = field(default_factory=list)
    metadata: dict[str, PlaceholderMetadata] = field(default_factory=dict)
    questionnaire: QuestionnaireState | None = None
    filled_bytes: bytes | None = None
    filled_html: str | None = None
    last_values: dict[str, str] = field(default_factory=dict)
    replace_report: ReplaceReport | None = None
    created_at: float = field(default_factory=time.time)

    def find_placeholder(self, placeholder_id: str) -> Placeholder | None:
        for placeholder in self.placeholders:
            if placeholder.id == placeholder_id:
                return placeholder
        return None

    def summary(self) -> dict[str, Any]:
        questionnaire: dict[str, Any] | None = None
        if self.questionnaire is not None:
            questionnaire = {
                "index": self.questionnaire.index,
                "total": len(self.questionnaire.order),
                "current_placeholder_id": self.questionnaire.current_id,
            }
        return {
            "document_id": self.document_id,
            "filename": self.filename,
            "state": self.state,
            "discovery_source": self.discovery_source,
            "placeholders": [placeholder.to_dict() for placeholder in self.placeholders],
            "questionnaire": questionnaire,
            "finalized": self.filled_bytes is not None,
            "last_values": dict(self.last_values),
        }

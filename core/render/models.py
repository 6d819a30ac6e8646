"""Render pipeline report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReplaceLogEntry(BaseModel):
    """Outcome of applying one placeholder's value."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["replaced", "unmatched", "skipped"]
    placeholder_id: str
    type: Literal["curly", "dollar"]
    occurrence: int | None = None
    match_count: int = 0
    replaced_count: int = 0
    reason: str | None = None


class ReplaceSummary(BaseModel):
    """Aggregate replacement summary for observability."""

    model_config = ConfigDict(extra="forbid")

    total_placeholders: int
    replaced_count: int
    unmatched_count: int
    skipped_count: int


class ReplaceReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: list[ReplaceLogEntry] = Field(default_factory=list)
    summary: ReplaceSummary


class RenderOutput(BaseModel):
    """Filled package bytes plus the report describing how they were produced."""

    model_config = ConfigDict(extra="forbid")

    docx_bytes: bytes
    replace_report: ReplaceReport

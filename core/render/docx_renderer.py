"""Apply placeholder values to the original document XML."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from core.render.models import RenderOutput, ReplaceLogEntry, ReplaceReport, ReplaceSummary
from core.render.xml_pattern import (
    Replacement,
    apply_replacements,
    replacement_for,
    select_matches,
)
from core.templates.models import Placeholder, PlaceholderMetadata
from core.utils.docx_xml import DocxContainer


def fill_document_xml(
    xml: str,
    placeholders: Sequence[Placeholder],
    metadata: Mapping[str, PlaceholderMetadata],
    values: Mapping[str, str],
) -> tuple[str, ReplaceReport]:
    """Replace every placeholder that has a value.

    All matches are located against the unmodified ``xml`` and applied in a single
    pass, so an inserted value can never be picked up by another placeholder's
    pattern and positional counts for dollar tokens stay stable.
    """

    entries: dict[str, ReplaceLogEntry] = {}
    pending: list[Replacement] = []

    for placeholder in placeholders:
        item = metadata[placeholder.id]
        value = values.get(placeholder.id)
        if value is None:
            entries[placeholder.id] = ReplaceLogEntry(
                status="skipped",
                placeholder_id=placeholder.id,
                type=item.type,
                occurrence=item.occurrence,
                reason="no_value",
            )
            continue

        matches, match_count = select_matches(xml, item.xml_pattern, item.occurrence)
        pending.extend(replacement_for(match, value, key=placeholder.id) for match in matches)
        entries[placeholder.id] = ReplaceLogEntry(
            status="unmatched",
            placeholder_id=placeholder.id,
            type=item.type,
            occurrence=item.occurrence,
            match_count=match_count,
            reason="no_match" if not matches else None,
        )

    new_xml, applied, rejected = apply_replacements(xml, pending)

    for replacement in applied:
        entry = entries[replacement.key]
        entry.replaced_count += 1
        entry.status = "replaced"
        entry.reason = None
    for replacement in rejected:
        entry = entries[replacement.key]
        if entry.status != "replaced":
            entry.reason = "overlapping_match"

    ordered = [entries[placeholder.id] for placeholder in placeholders]
    summary = ReplaceSummary(
        total_placeholders=len(ordered),
        replaced_count=sum(1 for entry in ordered if entry.status == "replaced"),
        unmatched_count=sum(1 for entry in ordered if entry.status == "unmatched"),
        skipped_count=sum(1 for entry in ordered if entry.status == "skipped"),
    )
    return new_xml, ReplaceReport(entries=ordered, summary=summary)


def render_filled_document(
    original_bytes: bytes,
    placeholders: Sequence[Placeholder],
    metadata: Mapping[str, PlaceholderMetadata],
    values: Mapping[str, str],
) -> RenderOutput:
    """Produce a filled package from the original bytes and one value set."""

    container = DocxContainer.from_bytes(original_bytes)
    xml = container.read_main_part()
    new_xml, report = fill_document_xml(xml, placeholders, metadata, values)
    return RenderOutput(docx_bytes=container.with_main_part(new_xml), replace_report=report)

from __future__ import annotations

import json
from pathlib import Path

import pytest

from apps.cli.io import build_output_paths, existing_output_files, write_fill_outputs_atomic
from core.render.models import ReplaceLogEntry, ReplaceReport, ReplaceSummary


def _report() -> ReplaceReport:
    return ReplaceReport(
        entries=[
            ReplaceLogEntry(
                status="replaced",
                placeholder_id="party",
                type="curly",
                match_count=1,
                replaced_count=1,
            )
        ],
        summary=ReplaceSummary(
            total_placeholders=1, replaced_count=1, unmatched_count=0, skipped_count=0
        ),
    )


def test_write_fill_outputs_atomic_writes_three_artifacts(tmp_path: Path) -> None:
    paths = build_output_paths(tmp_path / "out")

    write_fill_outputs_atomic(
        paths, docx_bytes=b"PK\x03\x04data", replace_report=_report(), preview_html="<p>x</p>"
    )

    assert paths.docx.read_bytes() == b"PK\x03\x04data"
    replace_log = json.loads(paths.replace_log.read_text(encoding="utf-8"))
    assert replace_log["summary"]["replaced_count"] == 1
    assert paths.preview_html.read_text(encoding="utf-8") == "<p>x</p>"
    assert existing_output_files(paths) == [paths.docx, paths.replace_log, paths.preview_html]
    assert list((tmp_path / "out").glob("*.tmp")) == []


def test_write_fill_outputs_atomic_cleans_tmp_on_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    paths = build_output_paths(tmp_path)

    def broken_write_bytes(self: Path, data: bytes) -> int:
        raise OSError("disk full")

    monkeypatch.setattr(Path, "write_bytes", broken_write_bytes)

    with pytest.raises(OSError, match="disk full"):
        write_fill_outputs_atomic(
            paths, docx_bytes=b"PK", replace_report=_report(), preview_html=""
        )

    assert not paths.docx.exists()
    assert list(tmp_path.glob("out.docx.*.tmp")) == []

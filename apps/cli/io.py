"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.render.models import ReplaceReport


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for a single fill."""

    docx: Path
    replace_log: Path
    preview_html: Path


def build_output_paths(out_dir: Path) -> OutputPaths:
    """Build fixed output file paths under out_dir."""

    return OutputPaths(
        docx=out_dir / "out.docx",
        replace_log=out_dir / "out.replace_log.json",
        preview_html=out_dir / "out.preview.html",
    )


def existing_output_files(paths: OutputPaths) -> list[Path]:
    """Return existing output files among fixed artifact paths."""

    candidates = [paths.docx, paths.replace_log, paths.preview_html]
    return [path for path in candidates if path.exists()]


def write_fill_outputs_atomic(
    paths: OutputPaths,
    *,
    docx_bytes: bytes,
    replace_report: ReplaceReport,
    preview_html: str,
) -> None:
    """Write the three artifacts atomically using temporary files + replace."""

    paths.docx.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.docx, docx_bytes)
    _atomic_write_json(paths.replace_log, replace_report.model_dump(mode="json"))
    _atomic_write_bytes(paths.preview_html, preview_html.encode("utf-8"))


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise

"""Typer CLI entrypoint for docfill-agent."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from apps.cli.io import build_output_paths, existing_output_files, write_fill_outputs_atomic
from core.config.settings import load_settings
from core.llm.completion import CompletionClient, build_completion_client
from core.orchestrator.workflow import DocumentWorkflow
from core.sessions.store import InMemorySessionStore
from core.utils.errors import DocfillError, InvalidContainerError, MissingValuesError

app = typer.Typer(help="Contract template filler CLI", rich_markup_mode=None)

TemplateOption = Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)]
SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", help="Settings YAML; defaults to the bundled settings."),
]
LlmOption = Annotated[
    bool,
    typer.Option("--llm", help="Discover placeholders with the text-completion service first."),
]


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("scan")
def scan_command(
    template: TemplateOption,
    settings: SettingsOption = None,
    llm: LlmOption = False,
) -> None:
    """Print the placeholders discovered in a template as JSON."""

    workflow = _build_workflow(settings, llm)
    try:
        result = workflow.upload(template.name, template.read_bytes())
        summary = workflow.get_summary(result.document_id)
    except InvalidContainerError as exc:
        typer.echo(f"ERROR: invalid template: {exc.message}")
        raise typer.Exit(code=3) from exc
    except DocfillError as exc:
        typer.echo(f"ERROR: {exc.error_code}: {exc.message}")
        raise typer.Exit(code=1) from exc

    payload = {
        "source": summary["discovery_source"],
        "placeholders": summary["placeholders"],
    }
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("fill")
def fill_command(
    template: TemplateOption,
    values: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    settings: SettingsOption = None,
    llm: LlmOption = False,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite outputs when they already exist.")
    ] = False,
) -> None:
    """Fill every placeholder from a JSON object of id -> value and write the outputs."""

    paths = build_output_paths(out_dir)
    existing = existing_output_files(paths)
    if existing and not force:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"ERROR: outputs already exist ({names}); pass --force to overwrite.")
        raise typer.Exit(code=1)
    if existing:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"INFO: overwriting existing outputs: {names}")

    try:
        value_map = _load_values(values)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    workflow = _build_workflow(settings, llm)
    failure_stage = "upload"
    try:
        uploaded = workflow.upload(template.name, template.read_bytes())
        failure_stage = "finalize"
        result = workflow.finalize(uploaded.document_id, value_map)
        filled = workflow.download(uploaded.document_id)
    except InvalidContainerError as exc:
        typer.echo(f"ERROR: invalid template: {exc.message}")
        raise typer.Exit(code=3) from exc
    except MissingValuesError as exc:
        typer.echo(f"ERROR: missing values for: {', '.join(exc.missing_ids)}")
        raise typer.Exit(code=2) from exc
    except DocfillError as exc:
        typer.echo(f"ERROR({failure_stage}): {exc.error_code}: {exc.message}")
        raise typer.Exit(code=1) from exc

    summary = result.replace_report.summary
    if summary.unmatched_count:
        unmatched = [
            entry.placeholder_id
            for entry in result.replace_report.entries
            if entry.status == "unmatched"
        ]
        typer.echo(
            "WARNING(replace): placeholders not found in document XML "
            f"(count={summary.unmatched_count}: {', '.join(unmatched)})."
        )

    try:
        write_fill_outputs_atomic(
            paths,
            docx_bytes=filled.content,
            replace_report=result.replace_report,
            preview_html=result.preview_html,
        )
    except OSError as exc:
        typer.echo(f"ERROR: write output failed: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"INFO: replaced {summary.replaced_count}/{summary.total_placeholders} placeholders"
    )
    typer.echo("INFO: success")


def _build_workflow(settings_path: Path | None, use_llm: bool) -> DocumentWorkflow:
    try:
        settings = load_settings(settings_path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    client: CompletionClient | None = None
    if use_llm:
        client = build_completion_client(settings.llm)
        if client is None:
            typer.echo("ERROR: --llm requires OPENAI_API_KEY to be set.")
            raise typer.Exit(code=1)

    return DocumentWorkflow(InMemorySessionStore(), settings=settings, client=client)


def _load_values(path: Path) -> dict[str, str]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"values file must be valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("values JSON must be an object")

    values: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str):
            raise ValueError(f"value for {key!r} must be a string")
        values[key] = value
    return values


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()

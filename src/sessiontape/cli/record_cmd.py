"""sessiontape record -- record a scripted session against an HTML page.

Validates the recording script, drives the page headlessly on a
virtual clock, and stores the resulting payload under .sessiontape/.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from sessiontape.cli.output import render_payload
from sessiontape.loader.errors import ErrorFormatter
from sessiontape.loader.validator import validate_script_file
from sessiontape.models.config import find_project_root, load_project_config
from sessiontape.recording.script import ScriptError, record_script
from sessiontape.storage.json_store import PayloadStore, write_payload_file


def record(
    script: Path = typer.Argument(..., help="Recording script (YAML)"),
    page: Optional[Path] = typer.Option(
        None, "--page", "-p", help="HTML page to load (overrides the script's page)"
    ),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o", help="Also export the payload to this JSON file"
    ),
    save: bool = typer.Option(True, "--save/--no-save", help="Store under .sessiontape/"),
) -> None:
    """Record a scripted session and store the payload."""
    console = Console()
    if not script.exists():
        typer.echo(f"Error: File not found: {script}", err=True)
        raise typer.Exit(code=1)

    recording_script, errors = validate_script_file(script)
    if errors or recording_script is None:
        source = script.read_text(encoding="utf-8")
        ErrorFormatter().print_errors(errors, source, str(script))
        raise typer.Exit(code=1)

    base_dir = script.parent
    if page is not None:
        recording_script = recording_script.model_copy(
            update={"page": str(page.resolve()), "html": None}
        )

    project_root = find_project_root()
    project_config = load_project_config(project_root)
    try:
        payload = record_script(recording_script, base_dir=base_dir, config=project_config)
    except (ScriptError, FileNotFoundError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    render_payload(payload, console)
    if save:
        store = PayloadStore(project_root, storage_dir=project_config.storage_dir)
        session_id = store.save(payload)
        console.print(f"[green]Session saved:[/green] {session_id}")
    if out is not None:
        write_payload_file(out, payload)
        console.print(f"[green]Payload written:[/green] {out}")

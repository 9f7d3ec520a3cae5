"""sessiontape validate -- check recording scripts and payload files.

YAML files are validated as recording scripts with line-annotated
errors; JSON files are validated as session payloads.
"""

from __future__ import annotations

from pathlib import Path

import typer

from sessiontape.loader.errors import ErrorFormatter
from sessiontape.loader.validator import ValidationErrorDetail, validate_script_file
from sessiontape.models.payload import InvalidPayloadError
from sessiontape.storage.json_store import read_payload_file


def _validate_payload(filepath: Path) -> list[ValidationErrorDetail]:
    try:
        read_payload_file(filepath)
    except InvalidPayloadError as exc:
        return [ValidationErrorDetail(field="<payload>", message=str(exc), type="invalid_payload")]
    return []


def validate(
    files: list[Path] = typer.Argument(..., help="Script (.yaml/.yml) or payload (.json) files"),
    ci: bool = typer.Option(False, "--ci", help="CI-friendly concise output"),
) -> None:
    """Validate recording scripts and session payloads.

    Reports all errors at once. Exits with code 0 if all valid, 1 if any
    file has errors.
    """
    formatter = ErrorFormatter(ci_mode=ci)
    for filepath in files:
        if not filepath.exists():
            typer.echo(f"Error: File not found: {filepath}", err=True)
            raise typer.Exit(code=1)

    valid_count = 0
    for filepath in files:
        if filepath.suffix.lower() == ".json":
            errors = _validate_payload(filepath)
            kind = "valid payload"
        else:
            _, errors = validate_script_file(filepath)
            kind = "valid script"

        if errors:
            source = filepath.read_text(encoding="utf-8")
            typer.echo(formatter.format_all(errors, source, str(filepath)), err=not ci)
        else:
            valid_count += 1
            typer.echo(formatter.success_line(str(filepath), kind))

    typer.echo(f"\n{valid_count}/{len(files)} files valid")
    if valid_count < len(files):
        raise typer.Exit(code=1)

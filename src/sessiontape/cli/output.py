"""Rich terminal output shared by the CLI commands.

Also resolves the SESSION argument that several commands accept: a
path to an exported payload file, a stored session ID, or nothing for
the latest stored session.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from sessiontape.models.config import find_project_root, load_project_config
from sessiontape.models.payload import InvalidPayloadError, SessionPayload
from sessiontape.storage.json_store import PayloadStore, read_payload_file


def open_store() -> PayloadStore:
    project_root = find_project_root()
    project_config = load_project_config(project_root)
    return PayloadStore(project_root, storage_dir=project_config.storage_dir)


def resolve_session(session: str | None, console: Console) -> SessionPayload:
    """Load the payload named on the command line or exit with code 1."""
    try:
        if session is not None and Path(session).is_file():
            return read_payload_file(Path(session))
        store = open_store()
        if session is None:
            payload = store.load_latest()
            if payload is None:
                console.print(
                    "[dim]No stored sessions found. Run 'sessiontape record' first.[/dim]"
                )
                raise typer.Exit(code=1)
            return payload
        return store.load(session)
    except FileNotFoundError:
        console.print(f"[bold red]Error:[/bold red] No session found for '{session}'.")
        raise typer.Exit(code=1)
    except InvalidPayloadError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)


def _event_mix(payload: SessionPayload) -> Counter[str]:
    mix: Counter[str] = Counter()
    for event in payload.events:
        if event.type in ("event", "meta"):
            mix[f"{event.type}:{event.event_type or event.data.get('action') or 'unknown'}"] += 1
        else:
            mix[event.type] += 1
    return mix


def render_payload(payload: SessionPayload, console: Console) -> None:
    """Render the envelope, counters and event mix of a payload."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Page", payload.page.href or "-")
    table.add_row("Agent", payload.page.agent or "-")
    table.add_row("Created", payload.created_at.isoformat())
    table.add_row("Schema", str(payload.version))
    table.add_row("Events", str(payload.event_count))
    duration = max((event.time_offset_ms for event in payload.events), default=0.0)
    table.add_row("Duration", f"{duration / 1000:.2f}s")
    if payload.dropped_event_count:
        table.add_row("Dropped", f"[yellow]{payload.dropped_event_count}[/yellow]")

    stats = payload.redaction_stats.model_dump(by_alias=True)
    redacted = ", ".join(f"{key}={value}" for key, value in stats.items() if value)
    table.add_row("Redactions", redacted or "none")

    console.print()
    console.print(table)

    mix = _event_mix(payload)
    if mix:
        events_table = Table(box=box.SIMPLE, padding=(0, 2))
        events_table.add_column("Event", style="bold")
        events_table.add_column("Count", justify="right")
        for name, count in mix.most_common():
            events_table.add_row(name, str(count))
        console.print(events_table)

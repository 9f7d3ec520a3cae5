"""sessiontape replay -- replay a session into a headless sandboxed surface.

Renders the sanitized snapshot, plays the timeline at the requested
speed, and optionally writes the final replay document to a file.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from sessiontape.cli.output import resolve_session
from sessiontape.models.config import find_project_root, load_project_config
from sessiontape.models.payload import InvalidPayloadError, SessionPayload
from sessiontape.replay.replayer import SessionReplayer


async def run_replay(
    payload: SessionPayload,
    replayer: SessionReplayer,
    speed: float,
) -> list[str]:
    """Load, play to completion, and return placeholder frame paths."""
    replayer.load(payload)
    await replayer.play(speed=speed)
    await replayer.wait_until_complete()
    placeholders = await replayer.wait_for_frames()
    replayer.surface.cancel_timers()
    return placeholders


def replay(
    session: Optional[str] = typer.Argument(
        None, help="Payload file or stored session ID (default: latest)"
    ),
    speed: float = typer.Option(1.0, "--speed", "-s", help="Playback speed multiplier (min 0.1)"),
    mutations: Optional[bool] = typer.Option(
        None, "--mutations/--no-mutations", help="Apply recorded DOM mutations"
    ),
    scripts: Optional[bool] = typer.Option(
        None, "--scripts/--no-scripts", help="Allow page scripts on the replay surface"
    ),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o", help="Write the final replay document to this HTML file"
    ),
) -> None:
    """Replay a recorded session headlessly."""
    console = Console()
    payload = resolve_session(session, console)

    config = load_project_config(find_project_root())
    overrides: dict[str, object] = {}
    if mutations is not None:
        overrides["applyMutations"] = mutations
    if scripts is not None:
        overrides["scriptMode"] = "on" if scripts else "off"

    replayer = SessionReplayer(
        config=config,
        on_status=lambda message: console.print(f"[cyan]{message}[/cyan]"),
    )
    if overrides:
        replayer.apply_config({"replay": overrides})

    try:
        placeholders = asyncio.run(run_replay(payload, replayer, speed))
    except InvalidPayloadError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    for path in placeholders:
        console.print(f"[yellow]Frame replaced by placeholder:[/yellow] {path}")

    document = replayer.document
    if out is not None and document is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(f"<!doctype html>\n{document.serialize()}", encoding="utf-8")
        console.print(f"[green]Replay document written:[/green] {out}")

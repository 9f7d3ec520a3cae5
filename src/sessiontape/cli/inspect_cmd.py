"""sessiontape inspect -- show a payload's envelope, counters and event mix."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from sessiontape.cli.output import render_payload, resolve_session


def inspect(
    session: Optional[str] = typer.Argument(
        None, help="Payload file or stored session ID (default: latest)"
    ),
) -> None:
    """Inspect a recorded session payload."""
    console = Console()
    payload = resolve_session(session, console)
    render_payload(payload, console)

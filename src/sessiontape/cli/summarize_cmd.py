"""sessiontape summarize -- behavior summary (and LLM prompt) as JSON."""

from __future__ import annotations

import json
from typing import Optional

import typer
from rich.console import Console

from sessiontape.analysis.summarizer import summarize as summarize_payload
from sessiontape.cli.output import resolve_session


def summarize(
    session: Optional[str] = typer.Argument(
        None, help="Payload file or stored session ID (default: latest)"
    ),
    prompt: bool = typer.Option(False, "--prompt", help="Print the analysis prompt instead"),
) -> None:
    """Summarize user behavior in a recorded session."""
    payload = resolve_session(session, Console(stderr=True))
    result = summarize_payload(payload)
    if prompt:
        typer.echo(result.prompt)
        return
    typer.echo(json.dumps(result.summary.to_wire(), indent=2, ensure_ascii=False))

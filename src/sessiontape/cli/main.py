"""sessiontape CLI entry point."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from sessiontape import __version__
from sessiontape.cli.inspect_cmd import inspect
from sessiontape.cli.record_cmd import record
from sessiontape.cli.replay_cmd import replay
from sessiontape.cli.summarize_cmd import summarize
from sessiontape.cli.validate_cmd import validate

app = typer.Typer(
    name="sessiontape",
    help="Privacy-scrubbed session capture and sandboxed replay",
    no_args_is_help=True,
)

app.command()(record)
app.command()(inspect)
app.command()(replay)
app.command()(summarize)
app.command()(validate)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sessiontape {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route sessiontape loggers through rich when --verbose is given."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log recorder and replayer activity."
    ),
) -> None:
    """Privacy-scrubbed session capture and sandboxed replay."""
    configure_logging(verbose)

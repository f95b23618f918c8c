"""
threadsync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from threadsync import __version__
from threadsync.cli import repo, sync

# Help panel names for command grouping
PANEL_SETUP = "Set Up a Directory"
PANEL_SYNC = "Synchronize"

app = typer.Typer(
    name="threadsync",
    help="Keep a local data directory in sync with a git remote",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"threadsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    threadsync - git-backed replication for a feed reader's data directory.

    Every change is committed locally right away; pushes wait until the
    directory has been quiet for a while, then pull (rebase) and push.

    Quick Start:
        threadsync init -d ~/Threadline -r git@host:me/feeds.git
        threadsync watch -d ~/Threadline

    Manual Sync:
        threadsync push              # Commit, pull and push now
        threadsync pull              # Fetch and rebase now
    """
    configure_logging(debug)
    ctx.obj = {"debug": debug}


app.command(name="init", rich_help_panel=PANEL_SETUP)(repo.init)
app.command(name="clone", rich_help_panel=PANEL_SETUP)(repo.clone)
app.command(name="status", rich_help_panel=PANEL_SETUP)(repo.status)

app.command(name="push", rich_help_panel=PANEL_SYNC)(sync.push)
app.command(name="pull", rich_help_panel=PANEL_SYNC)(sync.pull)
app.command(name="watch", rich_help_panel=PANEL_SYNC)(sync.watch)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]

"""
threadsync CLI - push, pull and watch.

Each command builds a SyncEngine for the directory, so the output is the
same transport log an embedding application would show.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from threadsync.cli.errors import ExitCode, print_not_a_repository_error
from threadsync.core.config import load_config
from threadsync.core.git import TransportResult
from threadsync.core.sync import (
    LogEntry,
    LogLevel,
    SyncEngine,
    SyncPhase,
    SyncRunResult,
    SyncStatus,
)

console = Console()

PHASE_STYLES = {
    SyncPhase.IDLE: "green",
    SyncPhase.COMMITTING: "blue",
    SyncPhase.WAITING: "yellow",
    SyncPhase.PULLING: "blue",
    SyncPhase.PUSHING: "blue",
    SyncPhase.ERROR: "red",
}


def print_log_entries(entries: list[LogEntry]) -> None:
    for entry in entries:
        stamp = entry.timestamp.astimezone().strftime("%H:%M:%S")
        message = escape(entry.message)
        if entry.level == LogLevel.ERROR:
            console.print(f"[dim]{stamp}[/dim] [red]{message}[/red]", highlight=False)
        elif entry.message.startswith("$ "):
            console.print(f"[dim]{stamp}[/dim] [cyan]{message}[/cyan]", highlight=False)
        else:
            console.print(f"[dim]{stamp}[/dim] {message}", highlight=False)


async def _ensure_repository(engine: SyncEngine) -> bool:
    return await engine.repository.is_repository()


def push(
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Synchronized directory",
    ),
) -> None:
    """
    Commit pending changes, pull (rebase) and push right now.

    Examples:
        threadsync push
        threadsync push -d ~/Threadline
    """
    engine = SyncEngine(data_dir, load_config(data_dir))

    async def _push() -> SyncRunResult | None:
        async with engine:
            if not await _ensure_repository(engine):
                return None
            return await engine.force_push()

    result = asyncio.run(_push())
    if result is None:
        print_not_a_repository_error(str(data_dir))
        raise typer.Exit(ExitCode.USER_ERROR)

    print_log_entries(engine.get_full_log())
    if not result.success:
        console.print(f"[red]✗[/red] {escape(result.error or '')}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    if result.skipped:
        console.print("[blue]○[/blue] No remote configured; committed locally only")
    else:
        console.print("[green]✓[/green] Synced with remote")


def pull(
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Synchronized directory",
    ),
) -> None:
    """
    Fetch and rebase onto the remote branch right now.

    A rebase that hits conflicts is aborted and reported; the directory is
    left as it was before the pull.

    Examples:
        threadsync pull
    """
    engine = SyncEngine(data_dir, load_config(data_dir))

    async def _pull() -> TransportResult | None:
        async with engine:
            if not await _ensure_repository(engine):
                return None
            return await engine.force_pull()

    result = asyncio.run(_pull())
    if result is None:
        print_not_a_repository_error(str(data_dir))
        raise typer.Exit(ExitCode.USER_ERROR)

    print_log_entries(engine.get_full_log())
    if not result.success:
        label = "Conflict" if result.conflict else "Pull failed"
        console.print(f"[red]✗[/red] {label}: {escape(result.error or '')}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    if result.skipped:
        console.print("[blue]○[/blue] Nothing to pull")
    else:
        console.print("[green]✓[/green] Up to date with remote")


def watch(
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Synchronized directory",
    ),
    wait: float | None = typer.Option(
        None,
        "--wait",
        "-w",
        min=0,
        help="Seconds of quiet before pushing (default from config: 10)",
    ),
    interval: float | None = typer.Option(
        None,
        "--interval",
        "-i",
        min=0.1,
        help="Seconds between working tree checks (default from config: 2)",
    ),
) -> None:
    """
    Keep a directory synced until interrupted.

    Polls the working tree; whenever it has changes they are committed and a
    push is scheduled once the directory has been quiet for the wait time.

    Examples:
        threadsync watch -d ~/Threadline
        threadsync watch --wait 30 --interval 5
    """
    config = load_config(data_dir)
    if wait is not None:
        config = config.model_copy(update={"wait_time_seconds": wait})
    poll_interval = interval if interval is not None else config.poll_interval_seconds
    engine = SyncEngine(data_dir, config)

    def show_phase(status: SyncStatus) -> None:
        style = PHASE_STYLES[status.phase]
        console.print(f"[{style}]● {status.phase.value}[/{style}]", highlight=False)

    async def _watch() -> bool:
        async with engine:
            if not await _ensure_repository(engine):
                return False
            engine.on_status_change(show_phase)
            console.print(f"[blue]Watching {engine.data_dir}[/blue] (Ctrl+C to stop)")

            last_seen = engine.log.last_id
            while True:
                tree = await engine.working_tree_status()
                if not tree.clean:
                    engine.notify_change(f"Update {len(tree.changed_paths)} file(s)")

                await asyncio.sleep(poll_interval)
                new_entries = engine.log.since(last_seen)
                if new_entries:
                    print_log_entries(new_entries)
                    last_seen = new_entries[-1].id

    try:
        ok = asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped. Unpushed commits will go out on the next run.[/dim]")
        raise typer.Exit(ExitCode.SIGINT)

    if not ok:
        print_not_a_repository_error(str(data_dir))
        raise typer.Exit(ExitCode.USER_ERROR)

"""
threadsync CLI - repository setup and inspection commands.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from threadsync.cli.errors import (
    ExitCode,
    print_error,
    print_git_not_installed_error,
    print_not_a_repository_error,
)
from threadsync.core.config import load_config
from threadsync.core.errors import GitError
from threadsync.core.git import GitRepository, RepositoryStatus, prepare_repository
from threadsync.core.process import CommandRunner

console = Console()


def _runner(data_dir: Path) -> CommandRunner:
    config = load_config(data_dir)
    return CommandRunner(timeout=config.command_timeout_seconds)


def init(
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Directory to synchronize",
    ),
    remote: str | None = typer.Option(
        None,
        "--remote",
        "-r",
        help="Remote URL to replicate with (cloned if the directory is empty)",
    ),
) -> None:
    """
    Prepare a directory for synchronization.

    Clones the remote into an empty directory, otherwise initializes a new
    repository (with an initial empty commit). An existing repository only
    gets its commit identity checked.

    Examples:
        threadsync init                                   # Local-only repository
        threadsync init -d ~/Threadline -r git@host:me/feeds.git
    """
    config = load_config(data_dir)
    runner = CommandRunner(timeout=config.command_timeout_seconds)

    async def _init() -> GitRepository:
        probe = GitRepository(data_dir, runner=runner)
        if not await probe.check_installed():
            print_git_not_installed_error()
            raise typer.Exit(ExitCode.USER_ERROR)
        return await prepare_repository(
            data_dir, runner=runner, remote_url=remote, identity=config.identity
        )

    try:
        repo = asyncio.run(_init())
    except GitError as e:
        print_error("Repository setup failed", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Ready to sync: {repo.path}")
    if not remote:
        console.print("[dim]No remote configured; pushes and pulls will be skipped.[/dim]")


def clone(
    remote: str = typer.Argument(..., help="Remote URL to clone"),
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Target directory (must be empty or absent)",
    ),
) -> None:
    """
    Clone an existing replica into a new directory.

    Examples:
        threadsync clone git@host:me/feeds.git -d ~/Threadline
    """
    config = load_config(data_dir)
    repo = GitRepository(
        data_dir,
        runner=CommandRunner(timeout=config.command_timeout_seconds),
        identity=config.identity,
    )

    try:
        asyncio.run(repo.clone(remote))
    except GitError as e:
        print_error("Clone failed", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Cloned {remote} into {repo.path}")


def status(
    data_dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Synchronized directory",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="List uncommitted paths",
    ),
) -> None:
    """
    Show the working tree state, branch and remote of a synchronized directory.

    Examples:
        threadsync status
        threadsync status -d ~/Threadline -v
    """
    repo = GitRepository(data_dir, runner=_runner(data_dir))

    async def _collect() -> tuple[RepositoryStatus | None, str | None, str | None]:
        if not await repo.is_repository():
            return None, None, None
        return await repo.status(), await repo.get_branch(), await repo.get_remote_url()

    tree, branch, remote_url = asyncio.run(_collect())
    if tree is None:
        print_not_a_repository_error(str(data_dir))
        raise typer.Exit(ExitCode.USER_ERROR)

    if tree.error:
        console.print(f"[red]✗[/red] Could not read status: {escape(tree.error)}")
    elif tree.clean:
        console.print("[green]✓[/green] No pending changes")
    else:
        console.print(
            f"[yellow]●[/yellow] {len(tree.changed_paths)} uncommitted change(s)"
        )

    table = Table(title="Repository", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Directory", str(repo.path))
    table.add_row("Branch", branch or "[dim]unknown[/dim]")
    table.add_row("Remote", remote_url or "[dim]none (sync is local only)[/dim]")
    console.print()
    console.print(table)

    if verbose and not tree.clean:
        console.print()
        for path in tree.changed_paths:
            console.print(f"  [yellow]{path}[/yellow]")

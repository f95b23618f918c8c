"""
Standardized error handling and exit codes for the threadsync CLI.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for threadsync CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Generic error, including failed pulls and pushes."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{escape(reason)}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_not_a_repository_error(path: str) -> None:
    print_error(
        f"{path} is not a git repository",
        reason="threadsync replicates a directory that is itself a git repository",
        solution=f"threadsync init --dir {path}",
    )


def print_git_not_installed_error() -> None:
    print_error(
        "git is not installed or not on PATH",
        reason="threadsync uses the git command line as its transport",
        solution="Install git from https://git-scm.com/downloads",
    )

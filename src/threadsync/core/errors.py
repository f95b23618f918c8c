"""
Exception taxonomy for git transport failures.

Skipped operations (no remote, no remote branch yet) are not errors; they are
reported as successful ``TransportResult`` values by the repository adapter.
"""

from __future__ import annotations


class GitError(Exception):
    """Exception raised when a git operation fails."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class ExecutionError(GitError):
    """
    A git subprocess exited non-zero, was killed by a signal, or could not start.

    The message is the composed diagnostic (stderr preferred, stdout fallback,
    timeout/signal annotation appended).
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        stderr: str = "",
        exit_code: int | None = None,
        signal: str | None = None,
    ):
        super().__init__(message, command=command, stderr=stderr)
        self.exit_code = exit_code
        self.signal = signal


class CommandTimeoutError(ExecutionError):
    """A git subprocess ran past its time limit and was killed."""

    def __init__(self, message: str, command: list[str] | None = None, timeout: float = 0.0):
        super().__init__(message, command=command)
        self.timeout = timeout


class ConflictError(GitError):
    """
    Replaying local commits onto the remote branch failed.

    Raised only after the in-progress rebase has been aborted, so the
    repository is back in its pre-pull state.
    """

    def __init__(self, message: str, remote_ref: str, command: list[str] | None = None):
        super().__init__(message, command=command)
        self.remote_ref = remote_ref


class RepositoryError(GitError):
    """The repository directory is not in a state the operation can work with."""


__all__ = [
    "CommandTimeoutError",
    "ConflictError",
    "ExecutionError",
    "GitError",
    "RepositoryError",
]

"""
Data models for the repository adapter.
"""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field

REMOTE_NAME = "origin"

# Probed in this order; the first remote-tracking branch that resolves wins.
REMOTE_BRANCH_CANDIDATES = ("main", "master")

# XY status code, then the path. The runner trims output, so the first line
# may have lost the leading blank of a " M" code.
_PORCELAIN_LINE = re.compile(r"^ ?(\S{1,2}) +(.+)$")


class TransportResult(BaseModel):
    """
    Outcome of a pull or push.

    ``skipped`` marks a defined no-op (no remote configured, or nothing on the
    remote yet) and is always reported with ``success=True``.
    """

    success: bool = Field(description="Whether the operation succeeded")

    skipped: bool = Field(
        default=False,
        description="True when there was nothing to do (no remote / no remote branch)",
    )

    error: str | None = Field(default=None, description="Failure diagnostic")

    conflict: bool = Field(
        default=False,
        description="True when a rebase replay failed and was aborted",
    )

    timed_out: bool = Field(
        default=False,
        description="True when a command was killed for exceeding its time limit",
    )

    @classmethod
    def ok(cls) -> TransportResult:
        return cls(success=True)

    @classmethod
    def skip(cls) -> TransportResult:
        return cls(success=True, skipped=True)

    def summary(self) -> str:
        """Generate a human-readable summary of the result."""
        if not self.success:
            prefix = "conflict" if self.conflict else "failed"
            return f"{prefix}: {self.error}"
        if self.skipped:
            return "skipped"
        return "ok"


class RepositoryStatus(BaseModel):
    """Working tree status as reported by ``git status --porcelain``."""

    clean: bool
    output: str = ""
    error: str | None = None

    @property
    def changed_paths(self) -> list[str]:
        """Paths listed in the porcelain output; renames report the new path."""
        paths: list[str] = []
        for line in self.output.splitlines():
            match = _PORCELAIN_LINE.match(line)
            if match is None:
                continue
            path = match.group(2)
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            paths.append(path)
        return paths


class RepositoryInfo(BaseModel):
    """Where the synchronized directory lives and what it syncs with."""

    data_dir: Path
    remote_url: str | None = None
    branch: str | None = None

"""
Git repository adapter.

Intent-level git operations on the synchronized directory, all async and all
routed through a CommandRunner so every invocation is time bounded and
reported to the transport log.

Example:
    >>> from threadsync.core.git import GitRepository
    >>> repo = GitRepository(Path("."))
    >>> await repo.commit_all("Add feed: Example")
    True
    >>> (await repo.pull()).skipped
    True
"""

from threadsync.core.git.models import (
    REMOTE_BRANCH_CANDIDATES,
    REMOTE_NAME,
    RepositoryInfo,
    RepositoryStatus,
    TransportResult,
)
from threadsync.core.git.repository import GitRepository, prepare_repository

__all__ = [
    "GitRepository",
    "REMOTE_BRANCH_CANDIDATES",
    "REMOTE_NAME",
    "RepositoryInfo",
    "RepositoryStatus",
    "TransportResult",
    "prepare_repository",
]

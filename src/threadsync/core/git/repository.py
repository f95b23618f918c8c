"""
Git repository adapter for the synchronized data directory.

Exposes intent-level operations (clone, init, commit everything, pull with
rebase, push) on top of the CommandRunner. Callers are expected to serialize
mutating operations through the engine's OperationQueue; this class does no
locking of its own.

Pull and push report failures as TransportResult values instead of raising,
so the engine can turn them into an error phase without unwinding.
"""

from __future__ import annotations

import logging
from pathlib import Path

from threadsync.core.config.models import IdentityConfig
from threadsync.core.errors import (
    CommandTimeoutError,
    ConflictError,
    ExecutionError,
    GitError,
    RepositoryError,
)
from threadsync.core.git.models import (
    REMOTE_BRANCH_CANDIDATES,
    REMOTE_NAME,
    RepositoryStatus,
    TransportResult,
)
from threadsync.core.process import CommandCategory, CommandRunner

logger = logging.getLogger(__name__)


class GitRepository:
    """
    Async git operations bound to one directory.

    Example:
        >>> repo = GitRepository(Path("~/Threadline").expanduser(), CommandRunner())
        >>> if not await repo.is_repository():
        ...     await repo.init()
        >>> if await repo.commit_all("Add feed: Example"):
        ...     result = await repo.pull()
    """

    def __init__(
        self,
        path: Path,
        runner: CommandRunner | None = None,
        identity: IdentityConfig | None = None,
    ) -> None:
        self.path = Path(path).expanduser().resolve()
        self.runner = runner or CommandRunner()
        self.identity = identity or IdentityConfig()

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    async def _git(
        self,
        *args: str,
        category: CommandCategory = CommandCategory.TRANSPORT,
        cwd: Path | None = None,
    ) -> str:
        return await self.runner.run(list(args), cwd=cwd or self.path, category=category)

    async def _succeeds(self, *args: str, category: CommandCategory) -> bool:
        try:
            await self._git(*args, category=category)
            return True
        except ExecutionError:
            return False

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    async def check_installed(self) -> bool:
        """Check that the git binary can be invoked."""
        try:
            await self.runner.run(["--version"], cwd=Path.cwd())
            return True
        except ExecutionError:
            return False

    async def is_repository(self) -> bool:
        """Check whether the directory is inside a git work tree."""
        if not self.path.is_dir():
            return False
        return await self._succeeds("rev-parse", "--git-dir", category=CommandCategory.PROBE)

    async def has_remote(self) -> bool:
        """Check whether the ``origin`` remote is configured."""
        return await self._succeeds(
            "remote", "get-url", REMOTE_NAME, category=CommandCategory.PROBE
        )

    async def status(self) -> RepositoryStatus:
        """Report whether the working tree has pending changes."""
        try:
            output = await self._git("status", "--porcelain", category=CommandCategory.PROBE)
        except ExecutionError as e:
            return RepositoryStatus(clean=True, error=str(e))
        return RepositoryStatus(clean=len(output) == 0, output=output)

    async def get_remote_url(self) -> str | None:
        """URL of ``origin``, or None if there is none."""
        try:
            return await self._git("remote", "get-url", REMOTE_NAME, category=CommandCategory.PROBE)
        except ExecutionError:
            return None

    async def get_branch(self) -> str | None:
        """Name of the checked out branch, or None if it can't be resolved."""
        try:
            return await self._git(
                "rev-parse", "--abbrev-ref", "HEAD", category=CommandCategory.PROBE
            )
        except ExecutionError:
            return None

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def clone(self, remote_url: str) -> None:
        """
        Clone ``remote_url`` into this repository's directory.

        Raises:
            RepositoryError: If the target directory exists and is not empty.
            ExecutionError: If git clone fails.
        """
        if self.path.exists() and any(self.path.iterdir()):
            raise RepositoryError(f"Clone target is not empty: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s into %s", remote_url, self.path)
        await self._git("clone", remote_url, self.path.name, cwd=self.path.parent)
        await self.configure_identity()

    async def init(self, remote_url: str | None = None) -> None:
        """
        Initialize a new repository, optionally wired to a remote.

        An empty initial commit is always created so HEAD resolves to a real
        branch even before any file is tracked.
        """
        self.path.mkdir(parents=True, exist_ok=True)
        logger.info("Initializing repository in %s", self.path)

        await self._git("init")
        await self.configure_identity()
        if remote_url:
            await self._git("remote", "add", REMOTE_NAME, remote_url)
        await self._git("commit", "--allow-empty", "-m", "Initial commit")

    async def configure_identity(self) -> None:
        """Set user.name / user.email locally, but only where they are unset."""
        for key, value in (("user.name", self.identity.name), ("user.email", self.identity.email)):
            if await self._succeeds("config", key, category=CommandCategory.IDENTITY):
                continue
            await self._git("config", key, value, category=CommandCategory.IDENTITY)
            logger.debug("Set %s=%s in %s", key, value, self.path)

    # -------------------------------------------------------------------------
    # Sync operations
    # -------------------------------------------------------------------------

    async def commit_all(self, message: str) -> bool:
        """
        Stage everything and commit it.

        Returns:
            True if a commit was created, False if nothing was staged.

        Raises:
            ExecutionError: If staging or committing fails.
        """
        await self._git("add", "-A")

        # Exit code 0 means the index matches HEAD.
        try:
            await self._git("diff", "--cached", "--quiet", category=CommandCategory.PROBE)
            logger.debug("Nothing staged in %s", self.path)
            return False
        except CommandTimeoutError:
            raise
        except ExecutionError as e:
            if e.exit_code != 1:
                raise

        await self._git("commit", "-m", message)
        logger.info("Committed in %s: %s", self.path, message)
        return True

    async def _resolve_remote_branch(self) -> str | None:
        for name in REMOTE_BRANCH_CANDIDATES:
            ref = f"{REMOTE_NAME}/{name}"
            if await self._succeeds("rev-parse", "--verify", ref, category=CommandCategory.PROBE):
                return ref
        return None

    async def _rebase_onto(self, remote_ref: str) -> None:
        """
        Replay local commits onto ``remote_ref``.

        Raises:
            ConflictError: If the rebase failed. The rebase is aborted first.
        """
        try:
            await self._git("rebase", remote_ref)
        except ExecutionError as e:
            logger.warning("Rebase onto %s failed, aborting: %s", remote_ref, e)
            try:
                await self._git("rebase", "--abort")
            except ExecutionError as abort_error:
                logger.warning("git rebase --abort failed: %s", abort_error)
            raise ConflictError(str(e), remote_ref=remote_ref, command=e.command) from e

    async def pull(self) -> TransportResult:
        """
        Bring in remote history, rebasing local commits on top when needed.

        Returns:
            TransportResult; ``skipped`` when there is no remote or the remote
            has no branch yet.
        """
        if not await self.has_remote():
            return TransportResult.skip()

        try:
            await self._git("fetch", REMOTE_NAME)

            remote_ref = await self._resolve_remote_branch()
            if remote_ref is None:
                logger.info("No remote branch on %s yet, nothing to pull", REMOTE_NAME)
                return TransportResult.skip()

            local_head = await self._git("rev-parse", "HEAD")
            remote_head = await self._git("rev-parse", remote_ref)
            if local_head == remote_head:
                return TransportResult.ok()

            if await self._succeeds(
                "merge-base", "--is-ancestor", remote_ref, "HEAD",
                category=CommandCategory.TRANSPORT,
            ):
                logger.debug("%s is already contained in HEAD", remote_ref)
                return TransportResult.ok()

            await self._rebase_onto(remote_ref)
            return TransportResult.ok()

        except ConflictError as e:
            return TransportResult(success=False, error=str(e), conflict=True)
        except CommandTimeoutError as e:
            return TransportResult(success=False, error=str(e), timed_out=True)
        except GitError as e:
            return TransportResult(success=False, error=str(e))

    async def push(self) -> TransportResult:
        """
        Push the current branch to ``origin`` with upstream tracking.

        Non-fast-forward rejections and network failures are reported, not retried.
        """
        if not await self.has_remote():
            return TransportResult.skip()

        try:
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
            await self._git("push", "-u", REMOTE_NAME, branch)
            return TransportResult.ok()
        except CommandTimeoutError as e:
            return TransportResult(success=False, error=str(e), timed_out=True)
        except GitError as e:
            return TransportResult(success=False, error=str(e))


async def prepare_repository(
    path: Path,
    runner: CommandRunner | None = None,
    remote_url: str | None = None,
    identity: IdentityConfig | None = None,
) -> GitRepository:
    """
    Make sure ``path`` is a usable repository.

    - already a repository: only the identity is (re)checked
    - remote given and directory empty or absent: clone it
    - otherwise: init, wiring up the remote when given

    Returns:
        The GitRepository bound to ``path``.
    """
    repo = GitRepository(path, runner=runner, identity=identity)

    if await repo.is_repository():
        await repo.configure_identity()
        return repo

    is_empty = not repo.path.exists() or not any(repo.path.iterdir())
    if remote_url and is_empty:
        await repo.clone(remote_url)
    else:
        await repo.init(remote_url)
    return repo

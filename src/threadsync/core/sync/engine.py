"""
The synchronization engine.

Ties the repository adapter, operation queue, debounce scheduler, state
machine and transport log together for one synchronized directory.

Flow:
    notify_change() -> commit -> arm countdown (waiting)
    countdown expiry / force_push() -> commit -> pull -> push -> idle
    force_pull() -> pull -> idle

Every git-touching step runs through the OperationQueue, so at most one
git command runs against the directory at a time no matter how many changes
or manual triggers arrive.

If the process dies mid-pipeline, changes may be committed locally but not
yet pushed; the next pipeline run picks them up. There is no other recovery.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from threadsync.core.config.models import SyncConfig
from threadsync.core.errors import GitError
from threadsync.core.git import GitRepository, RepositoryInfo, RepositoryStatus, TransportResult
from threadsync.core.process import CommandRunner
from threadsync.core.sync.debounce import DebounceScheduler
from threadsync.core.sync.log import CommandLogBridge, LogBuffer
from threadsync.core.sync.models import LogEntry, SyncPhase, SyncRunResult, SyncStatus
from threadsync.core.sync.queue import OperationQueue
from threadsync.core.sync.state import SyncStateMachine

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


class SyncEngine:
    """
    Keeps a data directory in sync with its git remote.

    One engine per synchronized directory; all state lives on the instance.

    Example:
        >>> async with SyncEngine(Path("~/Threadline"), SyncConfig()) as engine:
        ...     await engine.notify_change("Add feed: Example")
        ...     status = engine.get_status(since_log_id=0)
        ...     print(status.phase.value, status.remaining_ms)
        waiting 9998
    """

    AUTO_COMMIT_MESSAGE = "Auto-commit before sync"
    MANUAL_COMMIT_MESSAGE = "Manual sync"

    def __init__(
        self,
        data_dir: Path,
        config: SyncConfig | None = None,
        repository: GitRepository | None = None,
    ) -> None:
        """
        Args:
            data_dir: The synchronized directory (must be, or become, a git repo)
            config: Engine settings; defaults to SyncConfig()
            repository: Pre-built adapter. When omitted one is created whose
                command events feed this engine's transport log.
        """
        self.config = config or SyncConfig()
        self.log = LogBuffer(self.config.log_capacity)

        if repository is None:
            runner = CommandRunner(
                sink=CommandLogBridge(self.log),
                timeout=self.config.command_timeout_seconds,
            )
            repository = GitRepository(data_dir, runner=runner, identity=self.config.identity)
        self.repository = repository
        self.data_dir = repository.path

        self.state = SyncStateMachine(self.log)
        self.queue = OperationQueue()
        self.scheduler = DebounceScheduler(self._on_countdown_expired, self.config.wait_time_ms)
        self._loop: asyncio.AbstractEventLoop | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Bind to the running event loop and start the operation queue."""
        self._loop = asyncio.get_running_loop()
        await self.queue.start()
        logger.info("Sync engine started for %s", self.data_dir)

    async def shutdown(self) -> None:
        """
        Cancel the pending countdown, detach observers and let queued work finish.

        Commits made since the last push stay local until the next run.
        """
        if self.scheduler.cancel():
            logger.info("Shutdown cancelled a pending push for %s", self.data_dir)
        self.state.clear_subscribers()
        await self.queue.close()
        self._loop = None
        logger.info("Sync engine stopped for %s", self.data_dir)

    async def __aenter__(self) -> SyncEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def drain(self) -> None:
        """Wait until everything queued so far has run."""
        await self.queue.join()

    # -------------------------------------------------------------------------
    # Query surface
    # -------------------------------------------------------------------------

    def get_status(self, since_log_id: int | None = None) -> SyncStatus:
        """
        Snapshot of the engine.

        Args:
            since_log_id: Include log entries with a greater id. When omitted
                no entries are included; pass 0 for everything buffered.
        """
        return SyncStatus(
            phase=self.state.phase,
            last_sync_time=self.state.last_sync_time,
            last_error=self.state.last_error,
            wait_time_ms=self.scheduler.wait_time_ms,
            remaining_ms=self.scheduler.remaining_ms(),
            new_log_entries=self.log.since(since_log_id) if since_log_id is not None else [],
        )

    def get_full_log(self) -> list[LogEntry]:
        return self.log.entries()

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """
        Call ``listener`` with a fresh SyncStatus on every phase transition.

        Returns:
            Function that unsubscribes the listener.
        """
        return self.state.subscribe(lambda _phase: listener(self.get_status()))

    async def repository_info(self) -> RepositoryInfo:
        """Directory, remote URL and branch; read through the queue."""

        async def read() -> RepositoryInfo:
            return RepositoryInfo(
                data_dir=self.data_dir,
                remote_url=await self.repository.get_remote_url(),
                branch=await self.repository.get_branch(),
            )

        return await self.queue.enqueue(read, label="repository info")

    async def working_tree_status(self) -> RepositoryStatus:
        """Pending-changes check, queued so it never races a commit for the index lock."""
        return await self.queue.enqueue(self.repository.status, label="status")

    # -------------------------------------------------------------------------
    # Control surface
    # -------------------------------------------------------------------------

    def notify_change(self, message: str) -> asyncio.Future[bool]:
        """
        Commit the directory's current contents and (re)arm the push countdown.

        Fire-and-forget: the returned future resolves to whether a commit was
        made, and never carries an exception.
        """
        return self.queue.enqueue(
            lambda: self._commit_change(message),
            label=f"commit '{message}'",
        )

    def notify_change_threadsafe(self, message: str) -> concurrent.futures.Future[bool]:
        """notify_change() for callers running outside the engine's event loop."""
        if self._loop is None:
            raise RuntimeError("Sync engine has not been started")

        async def submit() -> bool:
            return await self.notify_change(message)

        return asyncio.run_coroutine_threadsafe(submit(), self._loop)

    async def force_push(self) -> SyncRunResult:
        """Cancel any countdown and run commit, pull and push now."""
        self.scheduler.cancel()
        return await self.queue.enqueue(
            lambda: self._run_pipeline(self.MANUAL_COMMIT_MESSAGE),
            label="manual push",
        )

    async def force_pull(self) -> TransportResult:
        """Cancel any countdown and pull now."""
        self.scheduler.cancel()
        return await self.queue.enqueue(self._pull_only, label="manual pull")

    def update_wait_time(self, seconds: float) -> None:
        """Change the countdown length used by subsequent scheduling."""
        if seconds < 0:
            raise ValueError(f"wait time must be >= 0, got {seconds}")
        self.scheduler.wait_time_ms = int(seconds * 1000)
        logger.info("Push wait time set to %ss", seconds)

    # -------------------------------------------------------------------------
    # Queued tasks
    # -------------------------------------------------------------------------

    def _on_countdown_expired(self) -> None:
        try:
            self.queue.enqueue(
                lambda: self._run_pipeline(self.AUTO_COMMIT_MESSAGE),
                label="scheduled push",
            )
        except RuntimeError as e:
            logger.warning("Scheduled push dropped: %s", e)

    async def _commit_change(self, message: str) -> bool:
        self.state.transition(SyncPhase.COMMITTING)
        try:
            committed = await self.repository.commit_all(message)
        except GitError as e:
            self.state.fail(f"Commit failed: {e}")
            return False
        except Exception as e:
            logger.exception("Unexpected error committing %s", self.data_dir)
            self.state.fail(f"Commit failed: {e}")
            return False

        if committed:
            self.scheduler.schedule()
            self.state.transition(SyncPhase.WAITING)
        elif self.scheduler.pending:
            # An earlier commit is still waiting to be pushed.
            self.state.transition(SyncPhase.WAITING)
        else:
            self.state.transition(SyncPhase.IDLE)
        return committed

    async def _run_pipeline(self, message: str) -> SyncRunResult:
        try:
            return await self._commit_pull_push(message)
        except Exception as e:
            logger.exception("Unexpected error syncing %s", self.data_dir)
            error = f"Sync failed: {e}"
            self.state.fail(error)
            return SyncRunResult(success=False, error=error)

    async def _commit_pull_push(self, message: str) -> SyncRunResult:
        self.state.transition(SyncPhase.COMMITTING)
        try:
            committed = await self.repository.commit_all(message)
        except GitError as e:
            error = f"Commit failed: {e}"
            self.state.fail(error)
            return SyncRunResult(success=False, error=error)

        self.state.transition(SyncPhase.PULLING)
        pull = await self.repository.pull()
        if not pull.success:
            error = f"Pull failed: {pull.error}"
            self.state.fail(error)
            return SyncRunResult(success=False, error=error, committed=committed, pull=pull)

        self.state.transition(SyncPhase.PUSHING)
        push = await self.repository.push()
        if not push.success:
            error = f"Push failed: {push.error}"
            self.state.fail(error)
            return SyncRunResult(
                success=False, error=error, committed=committed, pull=pull, push=push
            )

        self.state.mark_synced()
        self.state.transition(SyncPhase.IDLE)
        return SyncRunResult(success=True, committed=committed, pull=pull, push=push)

    async def _pull_only(self) -> TransportResult:
        self.state.transition(SyncPhase.PULLING)
        try:
            result = await self.repository.pull()
        except Exception as e:
            logger.exception("Unexpected error pulling into %s", self.data_dir)
            result = TransportResult(success=False, error=str(e))

        if not result.success:
            self.state.fail(f"Pull failed: {result.error}")
        else:
            self.state.transition(SyncPhase.IDLE)
        return result

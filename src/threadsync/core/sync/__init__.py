"""
Git-backed synchronization engine.

Local changes are committed as they happen, batched behind a debounce
countdown, and then replicated with a pull (rebase) followed by a push. All
git work for a directory is serialized through one OperationQueue and every
phase change is observable through SyncStatus and the transport log.

Example:
    >>> from threadsync.core.sync import SyncEngine
    >>> async with SyncEngine(Path("~/Threadline").expanduser()) as engine:
    ...     await engine.notify_change("Add feed: Example")
    ...     engine.get_status().phase
    <SyncPhase.WAITING: 'waiting'>
"""

from threadsync.core.sync.debounce import DebounceScheduler
from threadsync.core.sync.engine import SyncEngine
from threadsync.core.sync.log import CommandLogBridge, LogBuffer
from threadsync.core.sync.models import (
    LogEntry,
    LogLevel,
    PendingTimer,
    SyncPhase,
    SyncRunResult,
    SyncStatus,
)
from threadsync.core.sync.queue import OperationQueue
from threadsync.core.sync.state import SyncStateMachine

__all__ = [
    "CommandLogBridge",
    "DebounceScheduler",
    "LogBuffer",
    "LogEntry",
    "LogLevel",
    "OperationQueue",
    "PendingTimer",
    "SyncEngine",
    "SyncPhase",
    "SyncRunResult",
    "SyncStateMachine",
    "SyncStatus",
]

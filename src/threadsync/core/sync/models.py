"""
Data models for the sync engine.

Defines the phase enum, transport log entries and the status snapshot
handed to observers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from threadsync.core.git.models import TransportResult


class SyncPhase(str, Enum):
    """Current stage of the synchronization state machine."""

    IDLE = "idle"
    COMMITTING = "committing"
    WAITING = "waiting"
    PULLING = "pulling"
    PUSHING = "pushing"
    ERROR = "error"


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


class LogEntry(BaseModel):
    """
    One line of the transport log.

    Ids are assigned by the LogBuffer and never repeat or go backward.
    """

    id: int = Field(ge=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: LogLevel = LogLevel.INFO
    message: str
    detail: str | None = None


class SyncStatus(BaseModel):
    """
    Point-in-time view of the engine, recomputed on every query.

    Example:
        >>> status = engine.get_status(since_log_id=last_seen)
        >>> for entry in status.new_log_entries:
        ...     print(entry.message)
    """

    phase: SyncPhase
    last_sync_time: datetime | None = None
    last_error: str | None = None
    wait_time_ms: int
    remaining_ms: int | None = Field(
        default=None,
        description="Time left on the pending push countdown, None when no countdown",
    )
    new_log_entries: list[LogEntry] = Field(default_factory=list)


class SyncRunResult(BaseModel):
    """
    Outcome of one commit-pull-push pipeline.

    ``pull`` / ``push`` are None when the pipeline stopped before reaching them.
    """

    success: bool
    error: str | None = None
    committed: bool = False
    pull: TransportResult | None = None
    push: TransportResult | None = None

    @property
    def skipped(self) -> bool:
        """True when neither pull nor push had anything to talk to."""
        return bool(self.pull and self.pull.skipped and self.push and self.push.skipped)


@dataclass(frozen=True)
class PendingTimer:
    """The single active push countdown.

    Attributes:
        started_at: Monotonic clock reading (seconds) when the countdown began
        duration_ms: Length of the countdown
    """
    started_at: float
    duration_ms: int

    def remaining_ms(self, now: float) -> int:
        elapsed_ms = (now - self.started_at) * 1000
        return max(0, int(self.duration_ms - elapsed_ms))

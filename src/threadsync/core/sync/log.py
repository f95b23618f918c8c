"""
Bounded transport log and the bridge that feeds it from command events.
"""

from __future__ import annotations

import logging
from collections import deque

from threadsync.core.process import CommandCategory, CommandEvent, CommandEventType
from threadsync.core.sync.models import LogEntry, LogLevel

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 200


class LogBuffer:
    """
    Append-only ring of LogEntry objects.

    Once ``capacity`` entries are held, each append evicts the oldest one.
    Consumers poll incrementally with ``since(last_seen_id)``.
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._last_id = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def last_id(self) -> int:
        """Id of the most recently appended entry (0 if nothing was ever appended)."""
        return self._last_id

    def append(
        self,
        level: LogLevel,
        message: str,
        detail: str | None = None,
    ) -> LogEntry:
        self._last_id += 1
        entry = LogEntry(id=self._last_id, level=level, message=message, detail=detail)
        self._entries.append(entry)
        return entry

    def info(self, message: str, detail: str | None = None) -> LogEntry:
        return self.append(LogLevel.INFO, message, detail)

    def error(self, message: str, detail: str | None = None) -> LogEntry:
        return self.append(LogLevel.ERROR, message, detail)

    def since(self, last_id: int) -> list[LogEntry]:
        """Entries with an id greater than ``last_id``, oldest first."""
        return [entry for entry in self._entries if entry.id > last_id]

    def entries(self) -> list[LogEntry]:
        """Everything currently buffered, oldest first."""
        return list(self._entries)


class CommandLogBridge:
    """
    CommandRunner sink that records user-relevant git activity.

    Identity checks and internal probes are dropped so the visible log only
    shows transport activity.
    """

    HIDDEN_CATEGORIES = frozenset({CommandCategory.IDENTITY, CommandCategory.PROBE})

    def __init__(self, buffer: LogBuffer) -> None:
        self.buffer = buffer

    def __call__(self, event: CommandEvent) -> None:
        if event.category in self.HIDDEN_CATEGORIES:
            return

        if event.type == CommandEventType.START:
            self.buffer.info(f"$ {event.command}")
        elif event.type == CommandEventType.SUCCESS:
            if event.output:
                self.buffer.info(event.output)
        elif event.type == CommandEventType.ERROR:
            self.buffer.error(event.message or "Command failed", detail=event.command)

"""
Phase tracking for the sync engine.

Every transition updates the phase, writes one line to the transport log and
synchronously notifies subscribers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from threadsync.core.sync.log import LogBuffer
from threadsync.core.sync.models import SyncPhase

logger = logging.getLogger(__name__)

PhaseListener = Callable[[SyncPhase], None]

PHASE_LOG_MESSAGES: dict[SyncPhase, str] = {
    SyncPhase.COMMITTING: "Committing changes...",
    SyncPhase.WAITING: "Waiting to push...",
    SyncPhase.PULLING: "Pulling from remote...",
    SyncPhase.PUSHING: "Pushing to remote...",
    SyncPhase.IDLE: "Sync complete",
}

# Phases that end a run successfully; reaching one clears the last error.
_SETTLED_PHASES = frozenset({SyncPhase.IDLE, SyncPhase.WAITING})


class SyncStateMachine:
    """
    Holds the current phase, last successful sync time and last error.

    ``error`` is not terminal: the next run that settles successfully clears
    ``last_error``.
    """

    def __init__(self, log: LogBuffer) -> None:
        self.log = log
        self.phase = SyncPhase.IDLE
        self.last_sync_time: datetime | None = None
        self.last_error: str | None = None
        self._listeners: list[PhaseListener] = []

    def transition(self, phase: SyncPhase, error: str | None = None) -> None:
        """
        Move to ``phase``.

        Args:
            phase: The new phase
            error: Failure message; required when ``phase`` is ERROR

        Raises:
            ValueError: If an error message is given for a non-error phase or
                missing for the error phase.
        """
        if (phase == SyncPhase.ERROR) != (error is not None):
            raise ValueError(
                f"an error message goes with the error phase only, got {phase.value}"
            )

        previous = self.phase
        self.phase = phase

        if phase == SyncPhase.ERROR:
            self.last_error = error
            self.log.error(error)
            logger.warning("Sync error: %s", error)
        else:
            if phase in _SETTLED_PHASES:
                self.last_error = None
            self.log.info(PHASE_LOG_MESSAGES[phase])

        logger.debug("Phase %s -> %s", previous.value, phase.value)
        self._notify()

    def fail(self, error: str) -> None:
        self.transition(SyncPhase.ERROR, error)

    def mark_synced(self) -> None:
        """Record the completion time of a successful pull-and-push."""
        self.last_sync_time = datetime.now(timezone.utc)

    def subscribe(self, listener: PhaseListener) -> Callable[[], None]:
        """
        Register ``listener`` for every transition.

        Returns:
            A function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_subscribers(self) -> None:
        self._listeners.clear()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.phase)
            except Exception:
                logger.exception("Status listener %r failed", listener)

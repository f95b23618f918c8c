"""
Debounced push scheduling.

Every change restarts a single countdown; only when the countdown runs out
without interruption does the callback fire. Built on ``loop.call_later``,
which uses the loop's monotonic clock, and measured with ``time.monotonic``
for remaining-time queries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from threadsync.core.sync.models import PendingTimer

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIME_MS = 10_000


class DebounceScheduler:
    """
    Resettable, cancellable countdown with at most one live timer.

    Example:
        >>> scheduler = DebounceScheduler(on_expire, wait_time_ms=10_000)
        >>> scheduler.schedule()      # starts the countdown
        >>> scheduler.schedule()      # restarts it from the full duration
        >>> scheduler.remaining_ms()
        9998
        >>> scheduler.cancel()
        True
    """

    def __init__(
        self,
        callback: Callable[[], None],
        wait_time_ms: int = DEFAULT_WAIT_TIME_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._clock = clock
        self._handle: asyncio.TimerHandle | None = None
        self._timer: PendingTimer | None = None
        self.wait_time_ms = wait_time_ms

    @property
    def wait_time_ms(self) -> int:
        return self._wait_time_ms

    @wait_time_ms.setter
    def wait_time_ms(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"wait_time_ms must be >= 0, got {value}")
        self._wait_time_ms = int(value)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def timer(self) -> PendingTimer | None:
        return self._timer

    def remaining_ms(self) -> int | None:
        """Milliseconds until the callback fires, or None without a countdown."""
        if self._timer is None:
            return None
        return self._timer.remaining_ms(self._clock())

    def schedule(self) -> PendingTimer:
        """
        (Re)start the countdown using the current ``wait_time_ms``.

        Must be called from the event loop thread.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = PendingTimer(started_at=self._clock(), duration_ms=self._wait_time_ms)
        self._handle = loop.call_later(self._wait_time_ms / 1000, self._fire)
        logger.debug("Push scheduled in %dms", self._wait_time_ms)
        return self._timer

    def cancel(self) -> bool:
        """
        Cancel the pending countdown.

        Returns:
            True if a countdown was pending.
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._timer = None
        logger.debug("Pending push cancelled")
        return True

    def _fire(self) -> None:
        self._handle = None
        self._timer = None
        self._callback()

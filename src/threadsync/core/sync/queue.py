"""
Serialized execution of repository operations.

A single worker task drains an asyncio.Queue, so at most one task touches the
repository at any instant and tasks run in the order they were enqueued.

Usage:
    queue = OperationQueue()
    await queue.start()
    future = queue.enqueue(lambda: repo.commit_all("Add feed"))
    committed = await future
    await queue.close()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _QueuedTask(Generic[T]):
    task: Callable[[], Awaitable[T]]
    future: asyncio.Future[T]
    label: str


class OperationQueue:
    """
    Strictly ordered, one-at-a-time task executor.

    ``enqueue`` never blocks; it returns a future that resolves with the task's
    result, or carries its exception, once the task has run. A failing task
    never stops the tasks queued after it.
    """

    def __init__(self, name: str = "git") -> None:
        self.name = name
        self._queue: asyncio.Queue[_QueuedTask[Any] | None] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._closed = False
        self._busy = False
        self._completed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def busy(self) -> bool:
        """True while a task body is executing."""
        return self._busy

    @property
    def pending(self) -> int:
        """Number of tasks waiting to run (excluding the one executing)."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def completed(self) -> int:
        return self._completed

    async def start(self) -> None:
        """Start the worker. Must be called from the event loop that will own it."""
        if self._worker is not None:
            return
        self._closed = False
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name=f"{self.name}-queue")

    def enqueue(
        self,
        task: Callable[[], Awaitable[T]],
        label: str | None = None,
    ) -> asyncio.Future[T]:
        """
        Append ``task`` to the execution chain.

        Args:
            task: Zero-argument callable returning an awaitable
            label: Name used in debug logging

        Returns:
            Future resolved once the task has completed.

        Raises:
            RuntimeError: If the queue was never started or is closed.
        """
        if self._closed:
            raise RuntimeError(f"{self.name} queue is closed")
        if self._queue is None or self._worker is None:
            raise RuntimeError(f"{self.name} queue has not been started")

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        item = _QueuedTask(task=task, future=future, label=label or _describe(task))
        self._queue.put_nowait(item)
        logger.debug("Enqueued %s (%d pending)", item.label, self._queue.qsize())
        return future

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            if item is None:
                self._queue.task_done()
                break

            self._busy = True
            try:
                result = await item.task()
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as e:
                logger.debug("Queued task %s failed: %s", item.label, e)
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._busy = False
                self._completed += 1
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every task enqueued so far has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """
        Stop accepting work and wait for queued and running tasks to finish.
        """
        if self._worker is None or self._queue is None:
            return
        self._closed = True
        self._queue.put_nowait(None)
        await self._worker
        self._worker = None


def _describe(task: Callable[..., Any]) -> str:
    return getattr(task, "__qualname__", None) or repr(task)

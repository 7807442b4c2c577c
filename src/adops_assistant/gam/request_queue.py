# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""FIFO request queue that keeps one GAM forecast call in flight at a time.

The ForecastService rate-limits aggressively and undocumentedly, so every
forecast goes through a single drain loop. Callers just ``await
queue.enqueue(operation)``; the first enqueue into an idle queue starts the
loop, and it exits once the queue is empty.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import QueueFullError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class QueuedTask:
    """An operation waiting for its turn, and the future its caller awaits."""

    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RequestQueue:
    """Serializes async operations with a concurrency of one."""

    def __init__(
        self,
        min_interval: float = 0.0,
        max_pending: int = 0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the queue.

        Args:
            min_interval: Minimum seconds between the starts of consecutive operations
            max_pending: Reject new work beyond this many operations waiting behind
                the running one (0 = unbounded)
            clock: Monotonic clock used for spacing
            sleep: Sleep coroutine used for spacing
        """
        self._min_interval = min_interval
        self._max_pending = max_pending
        self._clock = clock
        self._sleep = sleep
        self._tasks: deque[QueuedTask] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._last_start: Optional[float] = None

    @property
    def pending(self) -> int:
        """Operations queued or running."""
        return len(self._tasks)

    @property
    def waiting(self) -> int:
        """Operations queued behind the one currently running."""
        return len(self._tasks) - (1 if self._draining and self._tasks else 0)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` after everything enqueued before it.

        Args:
            operation: Zero-argument coroutine function to execute

        Returns:
            Whatever the operation returns

        Raises:
            QueueFullError: The queue is bounded and full
            Exception: Whatever the operation raises
        """
        if self._max_pending and self.waiting >= self._max_pending:
            raise QueueFullError(
                f"Request queue full ({self.waiting} waiting, limit {self._max_pending})"
            )

        future = asyncio.get_running_loop().create_future()
        self._tasks.append(QueuedTask(operation=operation, future=future))

        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.ensure_future(self._drain())

        # Cancelling this await does not withdraw the operation; it still runs
        return await future

    async def _wait_for_turn(self) -> None:
        if self._last_start is None or self._min_interval <= 0:
            return
        delay = self._min_interval - (self._clock() - self._last_start)
        if delay > 0:
            logger.debug(f"Delaying {delay * 1000:.0f}ms before next request")
            await self._sleep(delay)

    async def _drain(self) -> None:
        try:
            while self._tasks:
                task = self._tasks[0]
                await self._wait_for_turn()
                self._last_start = self._clock()
                logger.debug(f"Processing request ({len(self._tasks) - 1} waiting behind it)")

                try:
                    result = await task.operation()
                except asyncio.CancelledError:
                    task.future.cancel()
                    raise
                except Exception as e:
                    logger.warning(f"Queued request failed: {e}")
                    if not task.future.done():
                        task.future.set_exception(e)
                else:
                    if not task.future.done():
                        task.future.set_result(result)
                finally:
                    self._tasks.popleft()
        finally:
            self._draining = False
            # Only reached with work left if the loop itself was cancelled
            while self._tasks:
                self._tasks.popleft().future.cancel()

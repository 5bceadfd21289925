# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2026 Karan Sharma
"""Serialized request scheduling for the rate-limited read endpoint.

A throughput throttle, not a correctness mechanism: operations run one at a
time in arrival order, with a fixed pause after each one finishes.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable

from protocol import SCHEDULER_DELAY, SchedulerClosedError

logger = logging.getLogger(__name__)


class RequestScheduler:
    """FIFO queue of async operations, one in flight, min_delay between them."""

    def __init__(self, min_delay: float = SCHEDULER_DELAY,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.min_delay = min_delay
        self._sleep = sleep
        self._queue: deque = deque()
        self._pump_task: asyncio.Task | None = None
        self._closed = False
        self.in_flight = 0
        self.completed = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, fn: Callable[..., Awaitable[Any]], *args) -> asyncio.Future:
        """Enqueue fn(*args). Returns a future for its result."""
        if self._closed:
            raise SchedulerClosedError("scheduler is closed")
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        # The submitter may have stopped waiting; the operation still runs
        fut.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._queue.append((fn, args, fut))
        pump = self._pump_task
        if pump is None or pump.done() or pump.get_loop() is not loop:
            self._pump_task = loop.create_task(self._pump())
        return fut

    async def run(self, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        """Enqueue fn(*args) and wait for it."""
        return await self.submit(fn, *args)

    async def _pump(self):
        while self._queue:
            fn, args, fut = self._queue.popleft()
            self.in_flight += 1
            try:
                result = await fn(*args)
            except asyncio.CancelledError:
                if not fut.done():
                    fut.set_exception(SchedulerClosedError("scheduler closed while operation was in flight"))
                raise
            except Exception as e:
                if not fut.done():
                    fut.set_exception(e)
            else:
                if not fut.done():
                    fut.set_result(result)
            finally:
                self.in_flight -= 1
                self.completed += 1
            await self._sleep(self.min_delay)

    def close(self) -> None:
        """Abort: fail every queued operation and stop the pump."""
        self._closed = True
        while self._queue:
            _, _, fut = self._queue.popleft()
            if not fut.done():
                fut.set_exception(SchedulerClosedError("scheduler closed before operation ran"))
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
        logger.debug("scheduler closed after %d operations", self.completed)

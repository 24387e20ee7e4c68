"""Keyed, cancellable one-shot timers on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TaskScheduler:
    """Run async callbacks after a delay, one pending timer per key.

    Scheduling a key that is already pending replaces the old timer.
    Callback failures are logged and never propagate into the loop.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def is_scheduled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def schedule(self, key: str, delay: float, callback: TimerCallback) -> asyncio.Task[None]:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._run(key, max(0.0, delay), callback),
            name=f"pysquadron-timer:{key}",
        )
        self._tasks[key] = task
        _logger.debug("Scheduled timer %s in %.1fs", key, delay)
        return task

    def cancel(self, key: str) -> bool:
        """Cancel the timer for *key*; return ``True`` when one was pending."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        if task is asyncio.current_task():
            # A callback rescheduling or cancelling its own key.
            return False
        task.cancel()
        _logger.debug("Cancelled timer %s", key)
        return True

    async def close(self) -> None:
        tasks = [task for task in self._tasks.values() if not task.done()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, key: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.error("Timer callback %s failed", key, exc_info=True)

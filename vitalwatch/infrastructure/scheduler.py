"""Asyncio-backed scheduler for periodic work.

One scheduler instance drives both the session freshness checks and the
performance reporter tick. Each ``call_every`` registration runs in its own
task; cancelling the returned handle cancels the task.
"""

import asyncio
import inspect
import logging
import time

from vitalwatch.domain.ports import CallbackHandle, ScheduledCallback, SchedulerPort

logger = logging.getLogger(__name__)


class AsyncioScheduler(SchedulerPort):
    """Runs periodic callbacks on the running event loop."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_every(self, interval_seconds: float, callback: ScheduledCallback) -> CallbackHandle:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        task = asyncio.get_running_loop().create_task(self._run(interval_seconds, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return CallbackHandle(task.cancel)

    async def _run(self, interval_seconds: float, callback: ScheduledCallback) -> None:
        name = getattr(callback, "__qualname__", repr(callback))
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                outcome = callback()
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # One failing run must not end the schedule
                logger.error(f"Scheduled callback {name} failed: {str(e)}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel every scheduled callback and wait for the tasks to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

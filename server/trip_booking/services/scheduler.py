"""Run-once-after-delay scheduling for detached work."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


class TaskScheduler:
    """
    Schedules coroutine functions to run once after a delay.

    Tasks are detached from the caller: a failure is logged and counted but
    never propagates back to whoever scheduled it.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def run_after(
        self,
        delay_seconds: float,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        name: Optional[str] = None,
    ) -> asyncio.Task:
        """
        Schedule ``func(*args)`` to run after ``delay_seconds``.

        Args:
            delay_seconds: Delay before the call, 0 runs on the next loop iteration
            func: Coroutine function to call
            *args: Positional arguments for ``func``
            name: Task name used in logs

        Returns:
            The created task
        """
        task_name = name or getattr(func, "__qualname__", "scheduled-task")
        task = asyncio.create_task(self._run(delay_seconds, func, args), name=task_name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, delay_seconds: float, func: Callable[..., Awaitable[Any]], args: tuple) -> Any:
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        return await func(*args)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            metrics_collector.record_notification_failure()
            logger.error(
                f"Scheduled task {task.get_name()} failed: {exc}",
                exc_info=exc,
                extra={"task": task.get_name()}
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for scheduled tasks to finish, cancelling any still running after ``timeout``."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        done, not_done = await asyncio.wait(tasks, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning(f"Cancelled {len(not_done)} scheduled tasks on drain")

"""
Tracks outstanding background work so shutdown can drain it.
"""

import asyncio
import logging
import os
from contextlib import suppress
from typing import Any, Callable, Coroutine, Optional

log = logging.getLogger(__name__)

DEFAULT_GRACE = 5.0


def force_exit() -> None:
    """Terminates the process without waiting for anything else."""
    logging.shutdown()
    os._exit(0)


class WorkGroup:
    """
    A counted wait group for asyncio tasks.

    Every background job (a save, a poll loop, the track-list watcher) is added
    before it starts and marked done when it ends. `drain` waits for the count
    to reach zero within a grace period.
    """

    def __init__(self) -> None:
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def count(self) -> int:
        return self._count

    def add(self, delta: int = 1) -> None:
        self._count += delta
        if self._count < 0:
            raise ValueError("WorkGroup counter went negative.")
        if self._count == 0:
            self._idle.set()
        else:
            self._idle.clear()

    def done(self) -> None:
        self.add(-1)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None
    ) -> asyncio.Task:
        """Runs a coroutine as a tracked background task."""
        self.add(1)
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self.done()
        if task.cancelled():
            return
        if exc := task.exception():
            log.error(
                f"[red]Background task {task.get_name()} failed: {exc}[/red]",
                exc_info=exc,
            )

    def tasks(self) -> list[asyncio.Task]:
        return list(self._tasks)

    async def wait(self) -> None:
        await self._idle.wait()

    async def cancel_all(self) -> None:
        """Cancels every spawned task and waits for them to unwind."""
        tasks = self.tasks()
        for task in tasks:
            task.cancel()
        with suppress(asyncio.CancelledError):
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(
        self,
        grace: float = DEFAULT_GRACE,
        on_timeout: Callable[[], None] = force_exit,
    ) -> bool:
        """
        Waits up to `grace` seconds for all work to finish.

        Returns True when everything finished in time. Otherwise `on_timeout`
        is called (by default the process exits immediately) and False is
        returned if it comes back.
        """
        log.info("Finishing...")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=grace)
        except asyncio.TimeoutError:
            log.warning(
                f"[yellow]Force shutdown: {self._count} task(s) still running "
                f"after {grace:g}s.[/yellow]"
            )
            on_timeout()
            return False
        log.info("Done.")
        return True

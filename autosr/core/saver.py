"""
The save task manager: admits at most one recording per target and drives each
recording through start, monitoring, recovery and release.
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Protocol

from rich.markup import escape

from autosr.exceptions import DownloaderError, RecoveryError, SaveError
from autosr.media.downloader import ProcessHandle
from autosr.models.stats import SaveStats
from autosr.models.target import Target
from autosr.utils.formatting import format_duration

from .recovery import Recovery
from .tracked import TrackedTarget

log = logging.getLogger(__name__)

# seconds to wait for a killed downloader when the save task itself is cancelled
KILL_WAIT = 5.0


class SaveState(Enum):
    """Where a save task is in its lifecycle."""

    ADMITTED = "admitted"
    RUNNING = "running"
    RECOVERING = "recovering"
    FINISHED = "finished"
    CANCELED = "canceled"


@dataclass(frozen=True)
class SaveTask:
    """Identity of one in-flight recording attempt."""

    name: str
    link: str


class Launcher(Protocol):
    """Starts a downloader for a stream URL and hands back its process."""

    async def start(self, url: str, name: str) -> ProcessHandle: ...


class _Signal(Enum):
    SHUTDOWN = "shutdown"
    CANCEL = "cancel"
    EXIT = "exit"


def _kill_late_start(start: asyncio.Future) -> None:
    if start.cancelled() or start.exception() is not None:
        return
    start.result().kill()


class SaveManager:
    """
    Deduplicates and runs recordings.

    The task table is the only place that decides whether a target is being
    saved. A task stays in the table for the whole recording, including any
    recovery attempts, and is removed before the target's `end_save` hook runs.
    """

    def __init__(
        self,
        launcher: Launcher,
        recovery: Recovery,
        shutdown: Optional[asyncio.Event] = None,
        stats: Optional[SaveStats] = None,
    ):
        self.launcher = launcher
        self.recovery = recovery
        self.shutdown = shutdown or asyncio.Event()
        self.stats = stats or SaveStats()
        self._tasks: dict[SaveTask, datetime] = {}
        self._states: dict[SaveTask, SaveState] = {}
        self._lock = asyncio.Lock()

    # --- task table -------------------------------------------------------

    def _insert(self, task: SaveTask) -> bool:
        if task in self._tasks:
            return False
        self._tasks[task] = datetime.now()
        self._states[task] = SaveState.ADMITTED
        return True

    async def admit(self, task: SaveTask) -> bool:
        """Inserts a task. Returns False if the same task is already in flight."""
        async with self._lock:
            return self._insert(task)

    async def release(self, task: SaveTask) -> None:
        async with self._lock:
            self._tasks.pop(task, None)
            self._states.pop(task, None)

    def discard(self, task: SaveTask, admitted_at: datetime) -> None:
        """Drops a task only if it is still the admission made at `admitted_at`."""
        if self._tasks.get(task) is admitted_at:
            del self._tasks[task]
            self._states.pop(task, None)

    def has(self, task: SaveTask) -> bool:
        return task in self._tasks

    def find(self, link: str) -> Optional[tuple[SaveTask, datetime]]:
        """Returns the most recently admitted task for a link, if any."""
        found = None
        for task, created_at in list(self._tasks.items()):
            if task.link == link and (found is None or created_at > found[1]):
                found = (task, created_at)
        return found

    def is_saving(self, link: str) -> bool:
        return self.find(link) is not None

    def state(self, link: str) -> Optional[SaveState]:
        if found := self.find(link):
            return self._states.get(found[0])
        return None

    def active(self) -> dict[SaveTask, datetime]:
        return dict(self._tasks)

    def _set_state(self, task: SaveTask, state: SaveState) -> None:
        if task in self._states:
            self._states[task] = state

    # --- state machine ----------------------------------------------------

    def reserve(
        self, tracked: TrackedTarget, stream_url: str
    ) -> Optional[tuple[SaveTask, datetime]]:
        """
        Admits a save for a target without yielding to the event loop.

        The target's cancel signal is renewed as part of admission, so a cancel
        fired at any point after this returns reaches the save. Returns the
        admitted task and its admission time, or None for a duplicate request.

        Raises:
            SaveError: The target has no link or no stream URL was given.
        """
        target = tracked.target
        if not target.link:
            raise SaveError("Cannot save: target has no link.")
        if not stream_url:
            raise SaveError(f"Cannot save {target.name}: no stream url.")

        task = SaveTask(name=target.name, link=target.link)
        if not self._insert(task):
            log.info(f"Already saving {escape(task.name)}.")
            self.stats.saves_duplicate += 1
            return None
        tracked.renew_cancel()
        return task, self._tasks[task]

    async def perform_save(
        self,
        tracked: TrackedTarget,
        stream_url: str,
        started_at: Optional[datetime] = None,
    ) -> None:
        """
        Records a target's stream until it ends, is canceled, or shuts down.

        A duplicate request for a target that is already being saved is logged
        and returns normally.

        Raises:
            SaveError: The target has no link or no stream URL was given.
            DownloaderError: The downloader could not be started.
        """
        reserved = self.reserve(tracked, stream_url)
        if reserved is None:
            return
        await self.run_save(tracked, reserved[0], stream_url, started_at)

    async def run_save(
        self,
        tracked: TrackedTarget,
        task: SaveTask,
        stream_url: str,
        started_at: Optional[datetime] = None,
    ) -> None:
        """Runs a reserved save to its end, then releases it."""
        target = tracked.target
        cancel = tracked.cancel
        target.set_started_at(started_at or datetime.now())
        target.begin_save()
        self.stats.saves_started += 1
        self.stats.targets_recorded.add(task.link)
        log.info(f"[bold cyan]▶ Saving[/] {escape(task.name)}")

        error: Optional[BaseException] = None
        try:
            await self._run(task, tracked, cancel, stream_url)
        except asyncio.CancelledError as e:
            error = e
            raise
        except Exception as e:
            error = e
            self.stats.saves_failed += 1
            raise
        finally:
            await self.release(task)
            target.end_save(error)

    def _stopped(self, cancel: asyncio.Event) -> bool:
        return self.shutdown.is_set() or cancel.is_set()

    def _mark_canceled(self, task: SaveTask, target: Target, at: datetime) -> None:
        target.set_finished_at(at)
        self._set_state(task, SaveState.CANCELED)
        self.stats.saves_canceled += 1

    async def _launch(self, url: str, name: str) -> ProcessHandle:
        start = asyncio.ensure_future(self.launcher.start(url, name))
        try:
            return await asyncio.shield(start)
        except asyncio.CancelledError:
            # the process may still come up after we were cancelled
            start.add_done_callback(_kill_late_start)
            raise

    async def _run(
        self,
        task: SaveTask,
        tracked: TrackedTarget,
        cancel: asyncio.Event,
        stream_url: str,
    ) -> None:
        target = tracked.target
        name = escape(task.name)
        if self._stopped(cancel):
            self._mark_canceled(task, target, datetime.now())
            log.info(f"{name} canceled before the downloader started")
            return

        handle = await self._launch(stream_url, task.name)
        log.info(f"{name} {handle} -> [dim]{escape(str(handle.path))}[/dim]")
        self._set_state(task, SaveState.RUNNING)

        try:
            while True:
                signal = await self._wait_first(handle, cancel)

                if signal is not _Signal.EXIT:
                    handle.kill()
                    rc = await handle.wait()
                    self._mark_canceled(task, target, datetime.now())
                    reason = "shutdown" if signal is _Signal.SHUTDOWN else "canceled"
                    log.info(f"{name} {reason} {handle} (exit {rc})")
                    return

                rc = handle.exited.result()
                if rc == 0:
                    log.info(f"[green]✓ {name} exit ok {handle}[/green]")
                    target.set_finished_at(datetime.now())
                    self._set_state(task, SaveState.FINISHED)
                    self.stats.saves_finished += 1
                    return

                log.info(f"[yellow]{name} exited {handle} (exit {rc})[/yellow]")
                self._set_state(task, SaveState.RECOVERING)
                try:
                    result = await self.recovery.recover(
                        target, stop=(self.shutdown, cancel)
                    )
                except RecoveryError as e:
                    # the stream really ended when the downloader died
                    ended_at = datetime.now() - timedelta(seconds=e.elapsed)
                    if self._stopped(cancel):
                        self._mark_canceled(task, target, ended_at)
                        log.info(f"{name} stopped during recovery")
                        return
                    target.set_finished_at(ended_at)
                    self._set_state(task, SaveState.FINISHED)
                    self.stats.recoveries_failed += 1
                    self.stats.saves_finished += 1
                    log.info(f"{name} did not recover: {escape(str(e))}")
                    return

                if self._stopped(cancel):
                    self._mark_canceled(
                        task, target, datetime.now() - timedelta(seconds=result.elapsed)
                    )
                    log.info(f"{name} stopped during recovery")
                    return

                log.info(f"{name} recovered ({format_duration(result.elapsed)})")
                self.stats.recoveries += 1
                try:
                    handle = await self._launch(result.url, task.name)
                except DownloaderError as e:
                    log.error(f"[red]✗ {name} could not restart: {e}[/red]")
                    target.set_finished_at(datetime.now())
                    self._set_state(task, SaveState.FINISHED)
                    self.stats.saves_finished += 1
                    return
                log.info(f"{name} {handle} -> [dim]{escape(str(handle.path))}[/dim]")
                self._set_state(task, SaveState.RUNNING)
        except asyncio.CancelledError:
            handle.kill()
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(handle.wait(), timeout=KILL_WAIT)
            self._mark_canceled(task, target, datetime.now())
            log.info(f"{name} task cancelled {handle}")
            raise

    async def _wait_first(
        self, handle: ProcessHandle, cancel: asyncio.Event
    ) -> _Signal:
        """
        Blocks until shutdown, the target's cancel signal, or process exit.

        When several are ready at once, cancellation wins so the process is
        always accounted for as stopped by us.
        """
        waiters = {
            asyncio.ensure_future(self.shutdown.wait()): _Signal.SHUTDOWN,
            asyncio.ensure_future(cancel.wait()): _Signal.CANCEL,
        }
        try:
            await asyncio.wait(
                [*waiters, handle.exited], return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                waiter.cancel()

        if self.shutdown.is_set():
            return _Signal.SHUTDOWN
        if cancel.is_set():
            return _Signal.CANCEL
        return _Signal.EXIT

"""
The process-wide table of tracked targets.

Adding a target resolves its site module, checks it once, and starts saving
right away if it is already live. A poll loop keeps checking the rest.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from rich.markup import escape

from autosr.exceptions import (
    AutosrError,
    NotTrackedError,
    SaveError,
    StreamURLNotFoundError,
    TargetNotLiveError,
)
from autosr.models.target import TargetInfo

from .modules import ModuleRegistry, host_of
from .saver import SaveManager, SaveTask
from .shutdown import WorkGroup
from .tracked import TrackedTarget

log = logging.getLogger(__name__)


class Tracker:
    """
    Owns the tracked-target map and starts saves for live targets.

    Map transitions happen under one lock. Module calls and liveness checks
    happen outside it since they may take arbitrarily long.
    """

    def __init__(
        self,
        modules: ModuleRegistry,
        saver: SaveManager,
        work: Optional[WorkGroup] = None,
    ):
        self.modules = modules
        self.saver = saver
        self.work = work or WorkGroup()
        self._tracking: dict[str, TrackedTarget] = {}
        self._lock = asyncio.Lock()

    @property
    def shutdown(self) -> asyncio.Event:
        return self.saver.shutdown

    # --- map access -------------------------------------------------------

    def get_tracking(self, link: str) -> Optional[TrackedTarget]:
        return self._tracking.get(link)

    def list_tracking(self) -> list[TargetInfo]:
        """A copy of every tracked target's info; never the live table."""
        return [t.info() for t in list(self._tracking.values())]

    def links(self) -> list[str]:
        return list(self._tracking)

    def __len__(self) -> int:
        return len(self._tracking)

    def __contains__(self, link: str) -> bool:
        return link in self._tracking

    async def _begin_tracking(self, tracked: TrackedTarget) -> bool:
        async with self._lock:
            if tracked.link in self._tracking:
                return False
            self._tracking[tracked.link] = tracked
            return True

    async def _end_tracking(self, link: str) -> Optional[TrackedTarget]:
        async with self._lock:
            return self._tracking.pop(link, None)

    # --- operations -------------------------------------------------------

    async def add_target(self, link: str) -> None:
        """
        Starts tracking a link. Adding a link that is already tracked does nothing.

        Raises:
            InvalidLinkError: The link has no host.
            NoModuleForHostError: No module claims the link's host.
            AutosrError: The module refused to create the target.
        """
        if self.get_tracking(link) is not None:
            return

        host = host_of(link)
        module = self.modules.find(host)
        target = await module.add_target(link)
        if target is None:
            raise AutosrError(f"{link}: module returned no target.")

        tracked = TrackedTarget(target)
        if not await self._begin_tracking(tracked):
            log.debug(f"{link} was added concurrently; keeping the first entry.")
            return
        log.info(f"[green]+[/green] {host} added {escape(link)}")

        # check right away so an already-live target is not missed
        try:
            url = await target.check_stream()
        except (TargetNotLiveError, StreamURLNotFoundError):
            return
        except Exception as e:
            log.warning(f"[yellow]Could not check {escape(target.name)}: {e}[/yellow]")
            return
        log.info(f"[bold]{escape(target.name)} is live now![/bold]")
        self.start_save(tracked, url)

    async def remove_target(self, link: str) -> None:
        """
        Stops tracking a link and cancels any recording of it.

        The entry is dropped and its cancel signal fired even when the module
        fails to remove the target; the module's error is still raised.

        Raises:
            NotTrackedError: The link is not tracked.
        """
        if self.get_tracking(link) is None:
            raise NotTrackedError(link)

        try:
            host = host_of(link)
            module = self.modules.find(host)
            await module.remove_target(link)
        finally:
            if tracked := await self._end_tracking(link):
                tracked.fire_cancel()
                log.info(f"[red]-[/red] removed {escape(link)}")

    def cancel_target(self, link: str) -> None:
        """
        Stops the current recording of a link but keeps tracking it.

        Raises:
            NotTrackedError: The link is not tracked.
        """
        tracked = self.get_tracking(link)
        if tracked is None:
            raise NotTrackedError(link)
        tracked.fire_cancel()
        log.info(f"Canceled {escape(tracked.name)}")

    # --- saving -----------------------------------------------------------

    def start_save(
        self, tracked: TrackedTarget, url: str, at: Optional[datetime] = None
    ) -> Optional[asyncio.Task]:
        """
        Admits a save for a target and runs it in the background.

        Admission and the cancel-signal renewal are done before this returns,
        so a remove or cancel issued right after always reaches the new save.
        Returns None when the target is already being saved.
        """
        try:
            reserved = self.saver.reserve(tracked, url)
        except SaveError as e:
            log.error(f"[red]✗ {escape(tracked.name)}: {e}[/red]")
            return None
        if reserved is None:
            return None

        task, admitted_at = reserved
        save = self.work.spawn(
            self._save(tracked, task, url, at or datetime.now()),
            name=f"save:{tracked.link}",
        )
        # a task cancelled before its first step never reaches its own release
        save.add_done_callback(lambda _: self.saver.discard(task, admitted_at))
        return save

    async def _save(
        self, tracked: TrackedTarget, task: SaveTask, url: str, at: datetime
    ) -> None:
        try:
            await self.saver.run_save(tracked, task, url, started_at=at)
        except AutosrError as e:
            log.error(f"[red]✗ {escape(tracked.name)}: {e}[/red]")

    async def snipe(self, tracked: TrackedTarget) -> bool:
        """Checks a target and starts saving it if it is live."""
        if self.saver.is_saving(tracked.link):
            return False
        try:
            url = await tracked.target.check_stream()
        except (TargetNotLiveError, StreamURLNotFoundError):
            return False
        if self.get_tracking(tracked.link) is not tracked:
            # removed while we were checking
            return False
        log.info(f"[bold]{escape(tracked.name)} is live now![/bold]")
        return self.start_save(tracked, url) is not None

    async def poll_once(self) -> int:
        """Checks every idle tracked target once. Returns how many saves started."""
        started = 0
        for tracked in list(self._tracking.values()):
            if self.shutdown.is_set():
                break
            try:
                if await self.snipe(tracked):
                    started += 1
            except Exception as e:
                log.warning(
                    f"[yellow]Check failed for {escape(tracked.name)}: {e}[/yellow]"
                )
        return started

    async def poll_forever(self, interval: float) -> None:
        """Polls tracked targets every `interval` seconds until shutdown."""
        log.debug(f"Polling every {interval:g}s")
        while not self.shutdown.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self.shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        log.debug("Poll loop stopped.")

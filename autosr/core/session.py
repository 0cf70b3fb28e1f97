"""
Wires the tracker, saver, recovery, and background loops into one running session.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from autosr.ipc.status import StatusService
from autosr.media.downloader import Downloader
from autosr.models.config import AppConfig
from autosr.models.stats import SaveStats
from autosr.storage.track_list import TrackListWatcher

from .modules import ModuleRegistry
from .recovery import Recovery
from .saver import Launcher, SaveManager
from .shutdown import WorkGroup, force_exit
from .tracker import Tracker

log = logging.getLogger(__name__)


class TrackingSession:
    """
    One run of the tracker: start the loops, wait for shutdown, drain.

    `shutdown` is the session-wide cancellation signal. Setting it stops the
    poll loop and the track-list watcher and kills every running downloader.
    """

    def __init__(
        self,
        config: AppConfig,
        modules: ModuleRegistry,
        launcher: Optional[Launcher] = None,
    ):
        self.config = config
        self.modules = modules
        self.shutdown = asyncio.Event()
        self.work = WorkGroup()
        self.stats = SaveStats()
        self.saver = SaveManager(
            launcher or Downloader(config),
            Recovery(config.recover_timeout, config.recover_poll_interval),
            shutdown=self.shutdown,
            stats=self.stats,
        )
        self.tracker = Tracker(modules, self.saver, self.work)
        self.status = StatusService(self.tracker)
        self.watcher: Optional[TrackListWatcher] = None
        if config.track_list:
            self.watcher = TrackListWatcher(Path(config.track_list), self.tracker)

    async def start(self) -> None:
        """Loads the track list and starts polling and watching in the background."""
        if self.watcher:
            added, _ = await self.watcher.reload()
            log.info(f"Tracking {len(self.tracker)} target(s) ({added} from list).")
            self.work.spawn(self.watcher.watch_forever(self.shutdown), name="watch")
        self.work.spawn(
            self.tracker.poll_forever(self.config.poll_interval), name="poll"
        )

    async def stop(self, on_timeout: Callable[[], None] = force_exit) -> bool:
        """
        Signals shutdown and drains background work within the grace period.

        Returns True if everything finished in time.
        """
        self.shutdown.set()
        try:
            return await self.work.drain(
                self.config.shutdown_grace, on_timeout=on_timeout
            )
        finally:
            await self._close_modules()

    async def _close_modules(self) -> None:
        for module in self.modules.modules():
            if close := getattr(module, "close", None):
                try:
                    await close()
                except Exception as e:
                    log.debug(f"Closing {type(module).__name__} failed: {e}")

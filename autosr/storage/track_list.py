"""
Reads the track list file and keeps the tracker in sync with it.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import aiofiles
from rich.markup import escape

from autosr.core.tracker import Tracker
from autosr.exceptions import AutosrError

log = logging.getLogger(__name__)


async def read_track_list(path: Path) -> list[str]:
    """
    Reads links from a track list, one per line.

    Blank lines and lines starting with '#' are ignored; duplicates are
    collapsed keeping the first occurrence.
    """
    async with aiofiles.open(path, encoding="utf-8") as f:
        content = await f.read()
    links = (line.strip() for line in content.splitlines())
    return list(dict.fromkeys(line for line in links if line and not line.startswith("#")))


class TrackListWatcher:
    """
    Mirrors the track list file into the tracker.

    Links that appear in the file are added, links that disappear are removed,
    using the same calls a manual request would.
    """

    def __init__(self, path: Path, tracker: Tracker, interval: float = 2.0):
        self.path = Path(path)
        self.tracker = tracker
        self.interval = interval
        self._managed: set[str] = set()
        self._last_mtime: Optional[float] = None

    async def reload(self) -> tuple[int, int]:
        """Syncs the tracker with the file. Returns (added, removed)."""
        try:
            wanted = await read_track_list(self.path)
        except FileNotFoundError:
            wanted = []
            log.warning(f"[yellow]Track list not found: {self.path}[/yellow]")
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"[red]Could not read track list {self.path}: {e}[/red]")
            return 0, 0

        added = removed = 0
        for link in wanted:
            if link in self.tracker:
                self._managed.add(link)
                continue
            try:
                await self.tracker.add_target(link)
                self._managed.add(link)
                added += 1
            except AutosrError as e:
                log.error(f"[red]✗ Could not add {escape(link)}: {e}[/red]")

        for link in sorted(self._managed - set(wanted)):
            self._managed.discard(link)
            if link not in self.tracker:
                continue
            try:
                await self.tracker.remove_target(link)
            except AutosrError as e:
                log.error(f"[red]✗ Problem removing {escape(link)}: {e}[/red]")
            removed += 1

        log.debug(f"Track list reloaded: +{added} -{removed}")
        return added, removed

    def _mtime(self) -> Optional[float]:
        try:
            return os.stat(self.path).st_mtime
        except OSError:
            return None

    async def changed(self) -> bool:
        """Reports whether the file was modified or removed since the last look."""
        mtime = await asyncio.to_thread(self._mtime)
        if mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        return True

    async def watch_forever(self, stop: asyncio.Event) -> None:
        """Reloads the track list whenever it changes, until `stop` is set."""
        self._last_mtime = await asyncio.to_thread(self._mtime)
        log.debug(f"Watching {self.path}")
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            if await self.changed():
                log.info(f"Track list updated: [dim]{self.path}[/dim]")
                await self.reload()
        log.debug("Track list watcher stopped.")

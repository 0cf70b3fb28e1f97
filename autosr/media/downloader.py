"""
Runs the external stream downloader and supervises the process it spawns.
"""

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from pathvalidate import sanitize_filename

from autosr.exceptions import DownloaderError
from autosr.models.config import AppConfig

log = logging.getLogger(__name__)


def output_path(save_to: str | Path, name: str, now: Optional[datetime] = None) -> Path:
    """
    Builds a collision-free recording path for a target.

    The first recording of the day is `<date>-<name>.ts`; later ones get a
    numeric suffix starting at 2 so an earlier file is never overwritten.
    """
    safe_name = sanitize_filename(name, platform="auto") or "unnamed"
    folder = Path(save_to) / safe_name
    stem = f"{(now or datetime.now()):%Y-%m-%d}-{safe_name}"

    candidate = folder / f"{stem}.ts"
    n = 2
    while candidate.exists():
        candidate = folder / f"{stem} {n}.ts"
        n += 1
    return candidate


def build_command(config: AppConfig, url: str, save_as: str) -> list[str]:
    """Builds the downloader argument vector for a stream URL."""
    return [
        config.get("download_with"),
        "--hls-segment-threads",
        str(config.segment_threads),
        "--hls-segment-timeout",
        f"{config.segment_timeout:g}",
        "--http-timeout",
        f"{config.http_timeout:g}",
        "--http-header",
        f"User-Agent={config.get('user_agent')}",
        "-o",
        save_as,
        f"hlsvariant://{url}",
        "best",
    ]


class ProcessHandle:
    """
    A running downloader process.

    `exited` resolves with the return code once the process is gone. `kill`
    may be called any number of times, before or after a natural exit.
    """

    def __init__(self, process: asyncio.subprocess.Process, app: str, path: Path):
        self.process = process
        self.app = app
        self.path = path
        self._killed = False
        self.exited: asyncio.Task = asyncio.ensure_future(process.wait())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def kill(self) -> None:
        if self._killed or self.process.returncode is not None:
            return
        self._killed = True
        try:
            self.process.kill()
        except ProcessLookupError:
            log.debug(f"{self!r} already exited before kill")

    async def wait(self) -> int:
        return await asyncio.shield(self.exited)

    def __repr__(self) -> str:
        return f"({self.app} pid {self.pid})"


class Downloader:
    """Starts the configured downloader for a target's stream."""

    def __init__(self, config: AppConfig):
        self.config = config

    async def start(self, url: str, name: str) -> ProcessHandle:
        """
        Spawns the downloader for a stream URL.

        The working directory is the target's save folder, which is created on
        demand.

        Raises:
            DownloaderError: The folder cannot be created or the program cannot
            be launched.
        """
        save_as = output_path(self.config.get("save_to"), name)
        try:
            await asyncio.to_thread(save_as.parent.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise DownloaderError(f"Cannot create '{save_as.parent}': {e}") from e

        args = build_command(self.config, url, save_as.name)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(save_as.parent),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=os.name != "nt",
            )
        except OSError as e:
            raise DownloaderError(f"Cannot run '{args[0]}': {e}") from e

        handle = ProcessHandle(process, os.path.basename(args[0]), save_as)
        log.debug(f"Started {handle} -> {save_as}")
        return handle

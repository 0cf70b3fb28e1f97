"""
A generic module for links that point straight at an HLS playlist.

Useful for self-hosted or CDN streams that have no site-specific page to
scrape: the playlist URL is both the target's identity and its stream URL.
"""

import asyncio
import logging
from pathlib import PurePosixPath
from urllib.parse import urlparse

import aiohttp
from pathvalidate import sanitize_filename

from autosr.exceptions import InvalidLinkError, StreamURLNotFoundError, TargetNotLiveError
from autosr.models.config import AppConfig
from autosr.models.target import BaseModule, Target

log = logging.getLogger(__name__)

GENERIC_STEMS = {"index", "playlist", "master", "chunklist", "live", "stream"}


def name_from_link(link: str) -> str:
    """Derives a display name from the most specific part of a playlist path."""
    parsed = urlparse(link)
    parts = [p for p in PurePosixPath(parsed.path).parts if p != "/"]
    for part in reversed(parts):
        stem = PurePosixPath(part).stem
        if stem and stem.lower() not in GENERIC_STEMS:
            return sanitize_filename(stem)
    return sanitize_filename(parsed.hostname or "stream")


class HLSTarget(Target):
    """A playlist URL that is live whenever it serves a valid playlist."""

    def __init__(self, link: str, module: "HLSModule"):
        super().__init__()
        self._link = link
        self._name = name_from_link(link)
        self._module = module

    @property
    def link(self) -> str:
        return self._link

    @property
    def name(self) -> str:
        return self._name

    async def check_stream(self) -> str:
        session = await self._module.session()
        try:
            async with session.get(self._link, allow_redirects=True) as response:
                if response.status != 200:
                    raise TargetNotLiveError(f"{self._name}: HTTP {response.status}")
                body = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"Playlist check failed for {self._link}: {e}")
            raise TargetNotLiveError(f"{self._name}: {e}") from e

        if not body.lstrip().startswith("#EXTM3U"):
            raise StreamURLNotFoundError(f"{self._name}: response is not a playlist")
        return self._link


class HLSModule(BaseModule):
    """Owns direct playlist targets for the hosts listed in `hls_hosts`."""

    def __init__(self, config: AppConfig):
        super().__init__()
        self.config = config
        self.hosts = tuple(config.hls_hosts)
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def session(self) -> aiohttp.ClientSession:
        """Gets or creates the shared session used for playlist checks."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    headers={"User-Agent": self.config.get("user_agent")},
                    timeout=aiohttp.ClientTimeout(
                        total=self.config.http_timeout, sock_connect=15
                    ),
                )
            return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None

    async def create_target(self, link: str) -> Target:
        parsed = urlparse(link)
        if parsed.scheme not in ("http", "https"):
            raise InvalidLinkError(f"{link}: only http(s) playlists are supported.")
        if not parsed.path.lower().endswith(".m3u8"):
            raise InvalidLinkError(f"{link}: not an .m3u8 playlist link.")
        return HLSTarget(link, self)

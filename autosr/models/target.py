"""
Capability contracts for trackable targets and the site modules that own them.

A site module turns a link into a `Target` that knows how to check whether it
is live and how to resolve a playable stream URL. Everything else (tracking,
saving, recovery) is handled by the core and only talks to these interfaces.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from autosr.exceptions import (
    NotTrackedError,
    StreamURLNotFoundError,
    TargetNotLiveError,
)

log = logging.getLogger(__name__)


class TargetInfo(BaseModel):
    """A point-in-time snapshot of a target for dashboards and tables."""

    link: str
    name: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    saving: bool = False


class Target(ABC):
    """
    A remote entity watched for live status.

    Subclasses provide `link`, `name` and `check_stream`; the save lifecycle
    hooks have working defaults that keep the timestamps the dashboard shows.
    """

    def __init__(self) -> None:
        self._started_at: Optional[datetime] = None
        self._finished_at: Optional[datetime] = None
        self._cancel: Optional[asyncio.Event] = None
        self._saving = False
        self.last_error: Optional[BaseException] = None

    @property
    @abstractmethod
    def link(self) -> str:
        """Canonical link used as the tracking key."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name, also used for the save folder."""

    @abstractmethod
    async def check_stream(self) -> str:
        """
        Resolves the current stream URL.

        Raises:
            TargetNotLiveError: The target is offline.
            StreamURLNotFoundError: The target is live but has no playable URL yet.
        """

    async def check_live(self) -> bool:
        """Reports whether the target is live, whether or not a URL is ready."""
        try:
            await self.check_stream()
        except TargetNotLiveError:
            return False
        except StreamURLNotFoundError:
            return True
        return True

    def begin_save(self) -> None:
        self._saving = True
        self._finished_at = None
        self.last_error = None

    def end_save(self, error: Optional[BaseException] = None) -> None:
        self._saving = False
        self.last_error = error

    def set_cancel(self, cancel: asyncio.Event) -> None:
        self._cancel = cancel

    def set_started_at(self, at: datetime) -> None:
        self._started_at = at

    def set_finished_at(self, at: datetime) -> None:
        self._finished_at = at

    @property
    def cancel_signal(self) -> Optional[asyncio.Event]:
        return self._cancel

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def finished_at(self) -> Optional[datetime]:
        return self._finished_at

    @property
    def is_saving(self) -> bool:
        return self._saving

    def info(self) -> TargetInfo:
        return TargetInfo(
            link=self.link,
            name=self.name,
            started_at=self._started_at,
            finished_at=self._finished_at,
            saving=self._saving,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.link}>"


class Module(ABC):
    """Site-specific logic that creates and manages targets for its hosts."""

    #: Host names this module is responsible for.
    hosts: tuple[str, ...] = ()

    @abstractmethod
    async def add_target(self, link: str) -> Target:
        """Creates (or returns) the target for a link."""

    @abstractmethod
    async def remove_target(self, link: str) -> Target:
        """Forgets the target for a link and returns it."""


class BaseModule(Module):
    """
    A module that keeps the targets it created keyed by link.

    Subclasses only need to implement `create_target`.
    """

    def __init__(self) -> None:
        self._targets: dict[str, Target] = {}
        self._lock = asyncio.Lock()

    @abstractmethod
    async def create_target(self, link: str) -> Target:
        """Builds a new target for a link owned by this module."""

    async def add_target(self, link: str) -> Target:
        async with self._lock:
            if target := self._targets.get(link):
                return target
        target = await self.create_target(link)
        async with self._lock:
            # Another caller may have created it while we were resolving
            target = self._targets.setdefault(link, target)
        log.debug(f"{type(self).__name__} added {link}")
        return target

    async def remove_target(self, link: str) -> Target:
        async with self._lock:
            target = self._targets.pop(link, None)
        if target is None:
            raise NotTrackedError(link)
        log.debug(f"{type(self).__name__} removed {link}")
        return target

    def targets(self) -> list[Target]:
        return list(self._targets.values())

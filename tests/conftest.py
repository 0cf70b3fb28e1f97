import asyncio
import itertools
from pathlib import Path
from typing import Callable, Optional

import pytest

from autosr.core.modules import ModuleRegistry
from autosr.core.recovery import Recovery
from autosr.core.saver import SaveManager
from autosr.core.shutdown import WorkGroup
from autosr.core.tracked import TrackedTarget
from autosr.core.tracker import Tracker
from autosr.exceptions import (
    AutosrError,
    DownloaderError,
    StreamURLNotFoundError,
    TargetNotLiveError,
)
from autosr.models.target import BaseModule, Target

_pids = itertools.count(1000)


class FakeTarget(Target):
    def __init__(
        self, link: str, name: Optional[str] = None, live: bool = False, url: str = ""
    ):
        super().__init__()
        self._link = link
        self._name = name or link.rstrip("/").rsplit("/", 1)[-1]
        self.live = live
        self.url = url or f"https://cdn.example.com/{self._name}.m3u8"
        self.checks = 0
        self.begin_calls = 0
        self.end_calls: list = []

    @property
    def link(self) -> str:
        return self._link

    @property
    def name(self) -> str:
        return self._name

    async def check_stream(self) -> str:
        self.checks += 1
        if not self.live:
            raise TargetNotLiveError(f"{self._name} is offline")
        if not self.url:
            raise StreamURLNotFoundError(f"{self._name} has no url")
        return self.url

    def begin_save(self) -> None:
        super().begin_save()
        self.begin_calls += 1

    def end_save(self, error=None) -> None:
        super().end_save(error)
        self.end_calls.append(error)


class FakeModule(BaseModule):
    hosts = ("example.com",)

    def __init__(self, live: bool = False, fail_remove: bool = False):
        super().__init__()
        self.live = live
        self.fail_remove = fail_remove
        self.created = 0

    async def create_target(self, link: str) -> Target:
        self.created += 1
        return FakeTarget(link, live=self.live)

    async def remove_target(self, link: str) -> Target:
        if self.fail_remove:
            raise AutosrError("module failed to remove target")
        return await super().remove_target(link)


class FakeHandle:
    """Stands in for a downloader process; records whether it was killed."""

    def __init__(self, url: str, name: str):
        self.url = url
        self.name = name
        self.app = "fake-dl"
        self.pid = next(_pids)
        self.path = Path(f"/tmp/{name}.ts")
        self.exited: asyncio.Future = asyncio.get_running_loop().create_future()
        self.killed = False
        self.kill_calls = 0
        self.waited = False

    def kill(self) -> None:
        self.kill_calls += 1
        if self.exited.done():
            return
        self.killed = True
        self.exited.set_result(-9)

    async def wait(self) -> int:
        rc = await asyncio.shield(self.exited)
        self.waited = True
        return rc

    def finish(self, rc: int = 0) -> None:
        if not self.exited.done():
            self.exited.set_result(rc)

    @property
    def running(self) -> bool:
        return not self.exited.done()

    def __repr__(self) -> str:
        return f"({self.app} pid {self.pid})"


class FakeLauncher:
    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    async def start(self, url: str, name: str) -> FakeHandle:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise DownloaderError("cannot run fake-dl")
        handle = FakeHandle(url, name)
        self.handles.append(handle)
        return handle

    def running(self) -> list[FakeHandle]:
        return [h for h in self.handles if h.running]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def recovery() -> Recovery:
    return Recovery(timeout=0.2, poll_interval=0.01)


@pytest.fixture
def saver(launcher, recovery) -> SaveManager:
    return SaveManager(launcher, recovery, shutdown=asyncio.Event())


@pytest.fixture
def module() -> FakeModule:
    return FakeModule()


@pytest.fixture
def registry(module) -> ModuleRegistry:
    registry = ModuleRegistry()
    registry.register(module)
    return registry


@pytest.fixture
def tracker(registry, saver) -> Tracker:
    return Tracker(registry, saver, WorkGroup())


@pytest.fixture
def tracked() -> TrackedTarget:
    return TrackedTarget(FakeTarget("https://example.com/alice", live=True))

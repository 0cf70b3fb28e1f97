import asyncio
import time

import pytest
from conftest import FakeTarget

from autosr.core.recovery import Recovery, wait_any
from autosr.exceptions import StreamURLNotFoundError, TargetNotLiveError


class FlakyTarget(FakeTarget):
    """Comes back online after `offline_checks` failed checks."""

    def __init__(self, link, offline_checks=0, url_after=0):
        super().__init__(link, live=True)
        self.offline_checks = offline_checks
        self.url_after = url_after

    async def check_stream(self) -> str:
        self.checks += 1
        if self.checks <= self.offline_checks:
            raise TargetNotLiveError("offline")
        if self.checks <= self.offline_checks + self.url_after:
            raise StreamURLNotFoundError("no url yet")
        return self.url


async def test_recovers_target_that_comes_back():
    target = FlakyTarget("https://example.com/alice", offline_checks=2)

    result = await Recovery(timeout=1, poll_interval=0.01).recover(target)

    assert result.url == "https://cdn.example.com/alice.m3u8"
    assert 0 < result.elapsed < 1


async def test_live_without_url_waits_for_url():
    target = FlakyTarget("https://example.com/alice", url_after=3)

    result = await Recovery(timeout=1, poll_interval=0.01).recover(target)

    assert result.url
    assert target.checks == 4


async def test_gives_up_with_elapsed_time_when_offline():
    target = FakeTarget("https://example.com/alice", live=False)

    with pytest.raises(TargetNotLiveError) as exc_info:
        await Recovery(timeout=0.1, poll_interval=0.02).recover(target)

    assert exc_info.value.elapsed == pytest.approx(0.1, abs=0.08)


async def test_gives_up_when_url_never_appears():
    target = FlakyTarget("https://example.com/alice", url_after=10_000)

    with pytest.raises(StreamURLNotFoundError) as exc_info:
        await Recovery(timeout=0.1, poll_interval=0.02).recover(target)

    assert exc_info.value.elapsed >= 0.09


async def test_stop_event_ends_wait_early():
    target = FakeTarget("https://example.com/alice", live=False)
    stop = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, stop.set)

    begin = time.monotonic()
    with pytest.raises(TargetNotLiveError):
        await Recovery(timeout=5, poll_interval=1).recover(target, stop=[stop])

    assert time.monotonic() - begin < 1


async def test_check_errors_are_retried():
    class Broken(FakeTarget):
        async def check_stream(self):
            self.checks += 1
            if self.checks == 1:
                raise RuntimeError("boom")
            return self.url

    target = Broken("https://example.com/alice", live=True)

    result = await Recovery(timeout=1, poll_interval=0.01).recover(target)
    assert result.url


async def test_wait_any():
    a, b = asyncio.Event(), asyncio.Event()
    assert not await wait_any([a, b], 0.01)

    b.set()
    assert await wait_any([a, b], 1)
    assert not await wait_any([], 0.01)

import asyncio
import time

import pytest

from autosr.core.shutdown import WorkGroup


async def test_drain_returns_when_work_finishes():
    work = WorkGroup()
    stop = asyncio.Event()

    async def job():
        await stop.wait()

    work.spawn(job())
    work.spawn(job())
    assert work.count == 2

    asyncio.get_running_loop().call_later(0.02, stop.set)
    assert await work.drain(1, on_timeout=pytest.fail)
    assert work.count == 0


async def test_drain_forces_exit_after_grace():
    work = WorkGroup()
    forced = []

    work.spawn(asyncio.sleep(10))
    begin = time.monotonic()
    assert not await work.drain(0.1, on_timeout=lambda: forced.append(True))

    assert forced == [True]
    assert time.monotonic() - begin == pytest.approx(0.1, abs=0.08)
    await work.cancel_all()


async def test_drain_with_nothing_running():
    assert await WorkGroup().drain(0.01, on_timeout=pytest.fail)


async def test_failed_task_still_counts_down(caplog):
    work = WorkGroup()

    async def broken():
        raise RuntimeError("boom")

    work.spawn(broken(), name="broken")
    await asyncio.wait_for(work.wait(), timeout=1)

    assert work.count == 0
    assert "broken" in caplog.text


async def test_counter_cannot_go_negative():
    work = WorkGroup()
    with pytest.raises(ValueError):
        work.done()

import asyncio

import pytest
from conftest import FakeModule, wait_until

from autosr.core.modules import ModuleRegistry
from autosr.core.shutdown import WorkGroup
from autosr.core.tracker import Tracker
from autosr.exceptions import (
    AutosrError,
    InvalidLinkError,
    NoModuleForHostError,
    NotTrackedError,
)

ALICE = "https://example.com/alice"
BOB = "https://example.com/bob"


async def stop(tracker: Tracker) -> None:
    tracker.shutdown.set()
    await asyncio.wait_for(tracker.work.wait(), timeout=1)


async def test_add_target_twice_is_a_noop(tracker, module):
    await tracker.add_target(ALICE)
    target = tracker.get_tracking(ALICE).target

    await tracker.add_target(ALICE)

    assert len(tracker) == 1
    assert module.created == 1
    assert target.checks == 1


async def test_add_live_target_starts_saving_immediately(tracker, module, launcher):
    module.live = True

    await tracker.add_target(ALICE)
    await wait_until(lambda: len(launcher.handles) == 1)

    assert tracker.saver.is_saving(ALICE)
    info = tracker.list_tracking()[0]
    assert info.saving and info.started_at is not None
    await stop(tracker)
    assert launcher.handles[0].killed


async def test_add_offline_target_does_not_save(tracker, launcher):
    await tracker.add_target(ALICE)
    await asyncio.sleep(0.02)

    assert ALICE in tracker
    assert launcher.handles == []


async def test_add_unknown_host_fails_without_side_effects(tracker):
    with pytest.raises(NoModuleForHostError):
        await tracker.add_target("https://unknown.org/carol")
    with pytest.raises(InvalidLinkError):
        await tracker.add_target("not a link")

    assert len(tracker) == 0


async def test_remove_untracked_target_fails(tracker, module):
    with pytest.raises(NotTrackedError):
        await tracker.remove_target(ALICE)
    assert module.targets() == []


async def test_remove_target_stops_recording(tracker, module, launcher):
    module.live = True
    await tracker.add_target(ALICE)
    await wait_until(lambda: len(launcher.handles) == 1)

    await tracker.remove_target(ALICE)
    await asyncio.wait_for(tracker.work.wait(), timeout=1)

    assert ALICE not in tracker
    assert module.targets() == []
    assert launcher.handles[0].killed
    assert not tracker.saver.is_saving(ALICE)


async def test_remove_cleans_up_even_when_module_fails(tracker, module):
    await tracker.add_target(ALICE)
    tracked = tracker.get_tracking(ALICE)
    module.fail_remove = True

    with pytest.raises(AutosrError, match="module failed"):
        await tracker.remove_target(ALICE)

    assert ALICE not in tracker
    assert tracked.cancel.is_set()


async def test_cancel_target_keeps_tracking(tracker, module, launcher):
    module.live = True
    await tracker.add_target(ALICE)
    await wait_until(lambda: len(launcher.handles) == 1)

    tracker.cancel_target(ALICE)
    await asyncio.wait_for(tracker.work.wait(), timeout=1)

    assert ALICE in tracker
    assert launcher.handles[0].killed
    assert tracker.get_tracking(ALICE).target.finished_at is not None


async def test_cancel_untracked_target_fails(tracker):
    with pytest.raises(NotTrackedError):
        tracker.cancel_target(ALICE)


async def test_list_tracking_is_a_copy(tracker):
    await tracker.add_target(ALICE)
    await tracker.add_target(BOB)

    listing = tracker.list_tracking()
    listing.clear()

    assert sorted(i.name for i in tracker.list_tracking()) == ["alice", "bob"]


async def test_poll_once_snipes_targets_that_went_live(tracker, launcher):
    await tracker.add_target(ALICE)
    await tracker.add_target(BOB)
    tracker.get_tracking(BOB).target.live = True

    assert await tracker.poll_once() == 1
    await wait_until(lambda: len(launcher.handles) == 1)
    assert launcher.handles[0].name == "bob"

    # already saving, so a second poll starts nothing
    assert await tracker.poll_once() == 0
    await stop(tracker)


async def test_poll_forever_stops_on_shutdown(tracker):
    await tracker.add_target(ALICE)
    task = tracker.work.spawn(tracker.poll_forever(0.01))
    await asyncio.sleep(0.05)

    tracker.shutdown.set()
    await asyncio.wait_for(task, timeout=1)
    assert tracker.get_tracking(ALICE).target.checks > 1


async def test_targets_are_independent(saver, launcher):
    registry = ModuleRegistry()
    registry.register(FakeModule(live=True))
    tracker = Tracker(registry, saver, WorkGroup())

    await tracker.add_target(ALICE)
    await tracker.add_target(BOB)
    await wait_until(lambda: len(launcher.handles) == 2)

    tracker.cancel_target(ALICE)
    await wait_until(lambda: not saver.is_saving(ALICE))

    assert saver.is_saving(BOB)
    running = {h.name: h.running for h in launcher.handles}
    assert running == {"alice": False, "bob": True}
    await stop(tracker)


async def test_remove_right_after_live_add_stops_the_save(tracker, module, launcher):
    module.live = True

    await tracker.add_target(ALICE)
    await tracker.remove_target(ALICE)
    await asyncio.wait_for(tracker.work.wait(), timeout=1)

    assert launcher.running() == []
    assert not tracker.saver.is_saving(ALICE)


async def test_cancel_right_after_live_add_stops_the_save(tracker, module, launcher):
    module.live = True

    await tracker.add_target(ALICE)
    tracker.cancel_target(ALICE)
    await asyncio.wait_for(tracker.work.wait(), timeout=1)

    assert launcher.running() == []
    assert ALICE in tracker
    assert tracker.saver.stats.saves_canceled == 1


async def test_save_cancelled_before_it_runs_is_released(tracker, module):
    await tracker.add_target(ALICE)
    tracked = tracker.get_tracking(ALICE)
    tracked.target.live = True

    save = tracker.start_save(tracked, tracked.target.url)
    assert tracker.saver.is_saving(ALICE)
    save.cancel()
    await asyncio.wait_for(tracker.work.wait(), timeout=1)

    assert not tracker.saver.is_saving(ALICE)
    assert tracker.start_save(tracked, tracked.target.url) is not None
    await stop(tracker)

"""Tests for epoch-guarded loops."""

import asyncio

from lyricsync.core.scheduler import GuardedLoop


async def test_runs_until_step_returns_none():
    calls = []

    def step(epoch):
        calls.append(epoch)
        return None if len(calls) == 3 else 0.0

    loop = GuardedLoop("test")
    epoch = loop.start(step)
    await asyncio.sleep(0.05)

    assert calls == [epoch, epoch, epoch]
    assert not loop.running


async def test_cancel_stops_future_wakeups():
    calls = []
    loop = GuardedLoop("test")
    loop.start(lambda epoch: calls.append(epoch) or 0.01)
    await asyncio.sleep(0.03)

    loop.cancel()
    seen = len(calls)
    await asyncio.sleep(0.05)

    assert seen > 0
    assert len(calls) == seen
    assert not loop.running


async def test_restart_supersedes_previous_run():
    first, second = [], []
    loop = GuardedLoop("test")
    old_epoch = loop.start(lambda epoch: first.append(epoch) or 0.01)
    await asyncio.sleep(0.02)
    new_epoch = loop.start(lambda epoch: second.append(epoch) or 0.01)
    count = len(first)
    await asyncio.sleep(0.05)

    assert new_epoch != old_epoch
    assert not loop.is_current(old_epoch)
    assert len(first) == count
    assert second and set(second) == {new_epoch}
    loop.cancel()


async def test_stale_wakeup_does_not_run_step():
    """A run whose epoch was bumped exits even if its task was not cancelled."""
    calls = []
    loop = GuardedLoop("test")
    loop.start(lambda epoch: calls.append(epoch) or 0.02)
    await asyncio.sleep(0)
    task = loop._task
    loop._epoch += 1  # simulate a cancel that lost the race with the wakeup
    await asyncio.sleep(0.05)

    assert len(calls) == 1
    assert task.done()


async def test_failing_step_keeps_schedule():
    attempts = []

    def step(epoch):
        attempts.append(epoch)
        if len(attempts) < 3:
            raise RuntimeError("transient")
        return None

    loop = GuardedLoop("test", error_delay=0.0)
    loop.start(step)
    await asyncio.sleep(0.05)

    assert len(attempts) == 3

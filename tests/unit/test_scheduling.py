"""Tests for timer-driven background tasks."""

import asyncio

import pytest

from riskguard.shared.scheduling import PeriodicTask


def test_non_positive_interval_rejected():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)


@pytest.mark.asyncio
async def test_run_once_sync_action():
    calls = []
    task = PeriodicTask("sync", 1.0, lambda: calls.append(1))

    await task.run_once()

    assert calls == [1]
    assert task.tick_count == 1


@pytest.mark.asyncio
async def test_run_once_async_action():
    calls = []

    async def action():
        calls.append(1)

    task = PeriodicTask("async", 1.0, action)
    await task.run_once()
    assert calls == [1]


@pytest.mark.asyncio
async def test_runs_until_stopped():
    calls = []
    task = PeriodicTask("ticker", 0.01, lambda: calls.append(1))

    task.start()
    assert task.running is True
    await asyncio.sleep(0.1)
    await task.stop()

    assert task.running is False
    assert len(calls) >= 2
    frozen = len(calls)
    await asyncio.sleep(0.05)
    assert len(calls) == frozen


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_loop():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    await asyncio.sleep(0.1)
    await task.stop()

    assert len(calls) >= 2
    assert task.tick_count == len(calls) - 1


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_without_start():
    task = PeriodicTask("idle", 10.0, lambda: None)
    await task.stop()

    task.start()
    first = task._task
    task.start()
    assert task._task is first
    await task.stop()

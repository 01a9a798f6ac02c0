from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from family_health.middleware.rate_limit import RateLimitPolicy, RateLimitStore, RateLimitSweeper

POLICY = RateLimitPolicy(name="test", window_ms=1000, max_requests=5)


def filled_store(expired: int, fresh: int) -> RateLimitStore:
    store = RateLimitStore()
    for i in range(expired):
        store.hit(POLICY, f"old-{i}", now_ms=0)
    for i in range(fresh):
        store.hit(POLICY, f"new-{i}", now_ms=5000)
    return store


@pytest.mark.asyncio
async def test_sweep_once_removes_expired():
    store = filled_store(expired=3, fresh=2)
    sweeper = RateLimitSweeper(store, clock=Mock(return_value=5500))

    removed = await sweeper.sweep_once()
    assert removed == 3
    assert len(store) == 2
    assert store.get("test", "new-0") is not None


@pytest.mark.asyncio
async def test_sweep_once_yields_between_batches():
    store = filled_store(expired=10, fresh=0)
    sweeper = RateLimitSweeper(store, clock=Mock(return_value=5000), batch_size=3)

    ticks = 0

    async def count_ticks():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0)

    ticker = asyncio.create_task(count_ticks())
    await asyncio.sleep(0)
    before = ticks
    removed = await sweeper.sweep_once()
    ticker.cancel()

    assert removed == 10
    assert ticks - before >= 3


@pytest.mark.asyncio
async def test_sweep_once_on_empty_store():
    sweeper = RateLimitSweeper(RateLimitStore(), clock=Mock(return_value=0))
    assert await sweeper.sweep_once() == 0


@pytest.mark.asyncio
async def test_background_task_sweeps_periodically():
    store = filled_store(expired=2, fresh=0)
    sweeper = RateLimitSweeper(store, interval_seconds=0.01, clock=Mock(return_value=5000))

    async with sweeper:
        assert sweeper.running
        for _ in range(100):
            if len(store) == 0:
                break
            await asyncio.sleep(0.01)

    assert len(store) == 0
    assert not sweeper.running


@pytest.mark.asyncio
async def test_stop_cancels_pending_sweep():
    store = filled_store(expired=1, fresh=0)
    sweeper = RateLimitSweeper(store, interval_seconds=3600, clock=Mock(return_value=5000))

    sweeper.start()
    assert sweeper.running
    await sweeper.stop()

    assert not sweeper.running
    assert len(store) == 1


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_without_start():
    sweeper = RateLimitSweeper(RateLimitStore(), interval_seconds=3600)
    await sweeper.stop()

    sweeper.start()
    task = sweeper._task
    sweeper.start()
    assert sweeper._task is task
    await sweeper.stop()


@pytest.mark.asyncio
async def test_sweep_failure_keeps_task_alive():
    store = RateLimitStore()
    clock = Mock(side_effect=[RuntimeError("clock broke")] + [0] * 1000)
    sweeper = RateLimitSweeper(store, interval_seconds=0.01, clock=clock)

    async with sweeper:
        for _ in range(100):
            if clock.call_count >= 2:
                break
            await asyncio.sleep(0.01)
        assert sweeper.running

    assert clock.call_count >= 2


@pytest.mark.parametrize("kwargs", [{"interval_seconds": 0}, {"batch_size": 0}])
def test_invalid_sweeper_settings(kwargs):
    with pytest.raises(ValueError):
        RateLimitSweeper(RateLimitStore(), **kwargs)

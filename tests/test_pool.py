import asyncio

import pytest

from georules.pool import run_pool

pytestmark = pytest.mark.anyio


async def test_results_keep_job_order_and_respect_concurrency():
    in_flight = 0
    peak = 0

    async def job(value):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.001 * (5 - value % 5))
        in_flight -= 1
        return value * 2

    results = await run_pool([lambda v=v: job(v) for v in range(12)], concurrency=3)

    assert results == [v * 2 for v in range(12)]
    assert peak <= 3


async def test_fail_soft_keeps_running_siblings():
    async def ok():
        await asyncio.sleep(0)
        return "ok"

    async def boom():
        raise RuntimeError("boom")

    results = await run_pool([ok, boom, ok, ok], concurrency=2)

    assert results[0] == results[2] == results[3] == "ok"
    assert isinstance(results[1], RuntimeError)


async def test_fail_fast_raises_and_stops_pending_jobs():
    started = []

    async def boom():
        started.append("boom")
        raise RuntimeError("boom")

    async def slow(index):
        started.append(index)
        await asyncio.sleep(0.01)
        return index

    jobs = [boom, *[lambda i=i: slow(i) for i in range(10)]]
    with pytest.raises(RuntimeError, match="boom"):
        await run_pool(jobs, concurrency=1, fail_fast=True)

    assert started == ["boom"]


async def test_empty_job_list():
    assert await run_pool([], concurrency=4) == []

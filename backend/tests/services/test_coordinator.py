import asyncio
import gc

import pytest

from asset_gateway.services.asset_generation.coordinator import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_execution():
    flight = SingleFlight()
    release = asyncio.Event()
    calls = {"n": 0}

    async def work():
        calls["n"] += 1
        await release.wait()
        return {"asset_id": "shared"}

    callers = [asyncio.create_task(flight.coordinate("k", work)) for _ in range(5)]
    await asyncio.sleep(0)
    assert flight.in_flight("k")

    release.set()
    results = await asyncio.gather(*callers)

    assert calls["n"] == 1
    assert all(r is results[0] for r in results)
    assert not flight.in_flight("k")
    assert len(flight) == 0


@pytest.mark.asyncio
async def test_failure_is_shared_and_key_released():
    flight = SingleFlight()
    release = asyncio.Event()
    calls = {"n": 0}

    async def work():
        calls["n"] += 1
        await release.wait()
        raise RuntimeError("boom")

    callers = [asyncio.create_task(flight.coordinate("k", work)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*callers, return_exceptions=True)

    assert calls["n"] == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert not flight.in_flight("k")


@pytest.mark.asyncio
async def test_sequential_calls_execute_again():
    flight = SingleFlight()
    calls = {"n": 0}

    async def work():
        calls["n"] += 1
        return calls["n"]

    assert await flight.coordinate("k", work) == 1
    assert await flight.coordinate("k", work) == 2


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    flight = SingleFlight()
    started: list[str] = []
    release = asyncio.Event()

    def make(name):
        async def work():
            started.append(name)
            await release.wait()
            return name

        return work

    first = asyncio.create_task(flight.coordinate("a", make("a")))
    second = asyncio.create_task(flight.coordinate("b", make("b")))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert sorted(started) == ["a", "b"]
    release.set()
    assert await asyncio.gather(first, second) == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_work():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "done"

    leader = asyncio.create_task(flight.coordinate("k", work))
    follower = asyncio.create_task(flight.coordinate("k", work))
    await asyncio.sleep(0)

    leader.cancel()
    with pytest.raises(asyncio.CancelledError):
        await leader

    release.set()
    assert await follower == "done"


@pytest.mark.asyncio
async def test_failure_without_waiting_callers_is_not_reported_as_unretrieved():
    loop = asyncio.get_running_loop()
    reported: list[dict] = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        flight = SingleFlight()
        release = asyncio.Event()

        async def work():
            await release.wait()
            raise RuntimeError("boom")

        caller = asyncio.create_task(flight.coordinate("k", work))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        while flight.in_flight("k"):
            await asyncio.sleep(0)
        del caller, work
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(previous)

    assert not [c for c in reported if "never retrieved" in str(c.get("message"))]

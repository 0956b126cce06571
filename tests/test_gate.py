import asyncio
import time

import pytest

from nodemap.config import Settings
from nodemap.errors import NotFound, RateLimited, UpstreamError
from nodemap.gate import RateGate


def run(coro):
    return asyncio.run(coro)


def test_requests_run_in_submission_order():
    order = []

    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0)

        def job(name):
            async def fn():
                order.append(name)
                return name.upper()

            return fn

        results = await asyncio.gather(*(gate.submit(job(n)) for n in ["a", "b", "c"]))
        return results, gate

    results, gate = run(scenario())
    assert order == ["a", "b", "c"]
    assert results == ["A", "B", "C"]
    assert gate.stats.dispatched == 3
    assert gate.pending == 0


def test_dispatches_are_spaced_by_min_interval():
    stamps = []

    async def scenario():
        gate = RateGate(min_interval=0.05, cooldown=0)

        async def fn():
            stamps.append(time.monotonic())

        await asyncio.gather(*(gate.submit(fn) for _ in range(3)))

    run(scenario())
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert all(gap >= 0.04 for gap in gaps)


def test_throttled_request_is_retried_before_later_ones():
    order = []
    failures = {"first": 1}

    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0)

        def job(name):
            async def fn():
                order.append(name)
                if failures.get(name):
                    failures[name] -= 1
                    raise RateLimited("slow down")
                return name

            return fn

        results = await asyncio.gather(*(gate.submit(job(n)) for n in ["first", "second", "third"]))
        return results, gate

    results, gate = run(scenario())
    assert order == ["first", "first", "second", "third"]
    assert results == ["first", "second", "third"]
    assert gate.stats.throttled == 1
    assert gate.stats.dispatched == 4


def test_throttle_pauses_for_retry_after():
    attempts = []

    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0)

        async def fn():
            attempts.append(time.monotonic())
            if len(attempts) == 1:
                raise RateLimited("slow down", retry_after=0.05)
            return "ok"

        return await gate.submit(fn), gate

    result, gate = run(scenario())
    assert result == "ok"
    assert attempts[1] - attempts[0] >= 0.04
    assert gate.stats.sleep_seconds >= 0.05


def test_gives_up_after_max_retries():
    calls = []

    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0, max_retries=2)

        async def fn():
            calls.append(1)
            raise RateLimited("still throttled")

        return await gate.submit(fn)

    with pytest.raises(RateLimited):
        run(scenario())
    assert len(calls) == 3


def test_other_failures_reach_only_their_caller():
    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0)

        async def ok():
            return "fine"

        async def missing():
            raise NotFound("nope")

        return await asyncio.gather(gate.submit(ok), gate.submit(missing), gate.submit(ok), return_exceptions=True)

    first, second, third = run(scenario())
    assert first == "fine"
    assert isinstance(second, NotFound)
    assert third == "fine"


def test_gate_restarts_after_draining():
    async def scenario():
        gate = RateGate(min_interval=0, cooldown=0)

        async def fn():
            return 1

        first = await gate.submit(fn)
        await asyncio.sleep(0)
        second = await gate.submit(fn)
        return first + second

    assert run(scenario()) == 2


def test_close_fails_queued_requests():
    async def scenario():
        gate = RateGate(min_interval=10, cooldown=0)

        async def fn():
            return "sent"

        first = asyncio.ensure_future(gate.submit(fn))
        second = asyncio.ensure_future(gate.submit(fn))
        await first
        # second is now waiting out the interval
        await asyncio.sleep(0)
        await gate.aclose()
        (outcome,) = await asyncio.gather(second, return_exceptions=True)
        return first.result(), outcome

    first, second = run(scenario())
    assert first == "sent"
    assert isinstance(second, UpstreamError)


def test_retry_bound_comes_from_settings():
    settings = Settings(lastfm_api_key="k", lastfm_min_interval=0, lastfm_cooldown=0, lastfm_max_retries=0)
    calls = []

    async def scenario():
        gate = RateGate.from_settings(settings)

        async def fn():
            calls.append(1)
            raise RateLimited("throttled")

        return await gate.submit(fn)

    with pytest.raises(RateLimited):
        run(scenario())
    assert len(calls) == 1

"""
TTLCache / SingleFlight 测试

- TTL 解析与过期判定
- touch 只刷新时间戳
- 同 key 并发调用只执行一次，失败后可重试
"""
import asyncio

import pytest

from pulseboard.core.ttl_cache import SingleFlight, TTLCache

from .conftest import FakeClock


def test_resolve_ttl_falls_back_for_invalid_interval():
    cache = TTLCache(300)
    assert cache.resolve_ttl(60) == 60
    assert cache.resolve_ttl(0) == 300
    assert cache.resolve_ttl(-5) == 300
    assert cache.resolve_ttl(None) == 300
    assert cache.resolve_ttl(float("nan")) == 300
    assert cache.resolve_ttl(float("inf")) == 300


def test_default_ttl_must_be_positive():
    with pytest.raises(ValueError):
        TTLCache(0)


def test_entry_expires_at_ttl_boundary():
    clock = FakeClock()
    cache = TTLCache(300, clock=clock)
    entry = cache.set("k", {"v": 1}, ttl=60, fingerprint='"abc"')

    clock.advance(59.9)
    assert cache.is_fresh(entry)
    clock.advance(0.1)
    assert cache.is_expired(entry)
    assert entry.fingerprint == '"abc"'


def test_touch_refreshes_timestamp_without_replacing_payload():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", "payload")
    clock.advance(20)
    assert not cache.is_fresh(cache.get("k"))

    cache.touch("k")
    entry = cache.get("k")
    assert cache.is_fresh(entry)
    assert entry.payload == "payload"

    # 不存在的 key 不报错
    cache.touch("missing")
    assert "missing" not in cache


def test_is_fresh_with_max_age():
    clock = FakeClock()
    cache = TTLCache(300, clock=clock)
    entry = cache.set("k", 1)
    clock.advance(30)
    assert cache.is_fresh(entry, max_age=60)
    assert not cache.is_fresh(entry, max_age=30)
    assert not cache.is_fresh(None)


@pytest.mark.asyncio
async def test_single_flight_joins_concurrent_callers():
    flight: SingleFlight[str, int] = SingleFlight()
    gate = asyncio.Event()
    calls = 0

    async def work() -> int:
        nonlocal calls
        calls += 1
        await gate.wait()
        return 42

    waiters = [asyncio.create_task(flight.run("k", work)) for _ in range(10)]
    await asyncio.sleep(0)
    assert "k" in flight
    assert len(flight) == 1

    gate.set()
    results = await asyncio.gather(*waiters)
    assert results == [42] * 10
    assert calls == 1
    assert "k" not in flight


@pytest.mark.asyncio
async def test_single_flight_clears_after_failure():
    flight: SingleFlight[str, int] = SingleFlight()
    attempts = 0

    async def flaky() -> int:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("boom")
        return 7

    with pytest.raises(RuntimeError):
        await flight.run("k", flaky)
    assert "k" not in flight

    assert await flight.run("k", flaky) == 7
    assert attempts == 2


@pytest.mark.asyncio
async def test_cancelled_joiner_does_not_cancel_shared_task():
    flight: SingleFlight[str, str] = SingleFlight()
    gate = asyncio.Event()

    async def work() -> str:
        await gate.wait()
        return "done"

    first = asyncio.create_task(flight.run("k", work))
    second = asyncio.create_task(flight.run("k", work))
    await asyncio.sleep(0)

    first.cancel()
    await asyncio.sleep(0)
    gate.set()

    assert await second == "done"
    assert first.cancelled()

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import pytest

from pywsf.state.policy import FREQUENT, INFREQUENT
from pywsf.state.store import QueryCache, QueryStatus


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Counter:
    """Fetcher returning the call number; fails while ``failures`` > 0."""

    def __init__(self, failures: int = 0) -> None:
        self.calls = 0
        self.failures = failures

    async def __call__(self) -> int:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError(f"failure {self.calls}")
        return self.calls


async def _no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


async def _settle() -> None:
    await asyncio.sleep(0.01)


FAST = FREQUENT.with_overrides(refetch_interval=timedelta(milliseconds=10), retry=0)


@pytest.mark.asyncio
async def test_fetch_serves_fresh_data_until_stale() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    fetcher = _Counter()
    key = ("vessels", "vesselBasics", "/vesselbasics")

    assert await cache.fetch(key, fetcher, FREQUENT) == 1
    clock.advance(29)
    assert await cache.fetch(key, fetcher, FREQUENT) == 1
    clock.advance(1)
    assert cache.is_stale(key)
    assert await cache.fetch(key, fetcher, FREQUENT) == 2
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_concurrent_fetches_are_coalesced() -> None:
    cache = QueryCache()
    started = asyncio.Event()
    release = asyncio.Event()
    calls = 0

    async def _slow() -> str:
        nonlocal calls
        calls += 1
        started.set()
        await release.wait()
        return "done"

    key = ("terminals", "terminalBasics", "/terminalbasics")
    first = asyncio.create_task(cache.fetch(key, _slow, INFREQUENT))
    await started.wait()
    second = asyncio.create_task(cache.fetch(key, _slow, INFREQUENT))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == ["done", "done"]
    assert calls == 1


@pytest.mark.asyncio
async def test_retries_with_backoff_then_succeeds() -> None:
    delays: list[float] = []

    async def _record(seconds: float) -> None:
        delays.append(seconds)

    cache = QueryCache(sleep=_record)
    fetcher = _Counter(failures=2)

    assert await cache.fetch(("schedule", "routes", "/routes/2024-01-01"), fetcher, FREQUENT) == 3
    assert delays == [1, 2]


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error_and_keep_old_data() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock, sleep=_no_sleep)
    key = ("fares", "faresTerminals", "/terminals/2024-01-01")

    await cache.fetch(key, _Counter(), FREQUENT)
    clock.advance(60)

    failing = _Counter(failures=10)
    with pytest.raises(RuntimeError, match="failure 4"):
        await cache.fetch(key, failing, FREQUENT)

    assert failing.calls == FREQUENT.retry + 1
    entry = cache.get_entry(key)
    assert entry is not None
    assert entry.status == QueryStatus.ERROR
    assert cache.get_data(key) == 1


@pytest.mark.asyncio
async def test_subscription_refetches_while_focused_and_stops_after_close() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    fetcher = _Counter()
    key = ("vessels", "vesselLocations", "/vessellocations")
    received: list[Any] = []

    subscription = cache.subscribe(key, fetcher, FAST, listener=received.append)
    await asyncio.sleep(0.1)
    assert fetcher.calls >= 3
    assert received[-1] == fetcher.calls
    assert subscription.data == fetcher.calls

    cache.set_focused(False)
    await _settle()
    paused_at = fetcher.calls
    await asyncio.sleep(0.05)
    assert fetcher.calls == paused_at

    cache.set_focused(True)
    await asyncio.sleep(0.05)
    assert fetcher.calls > paused_at

    subscription.close()
    await _settle()
    stopped_at = fetcher.calls
    await asyncio.sleep(0.05)
    assert fetcher.calls == stopped_at

    assert cache.collect_garbage() == 0
    clock.advance(FAST.gc_time.total_seconds())
    assert cache.collect_garbage() == 1
    assert key not in cache
    await cache.close()


@pytest.mark.asyncio
async def test_invalidate_prefix_marks_stale_and_refetches_subscribed() -> None:
    cache = QueryCache()
    subscribed = _Counter()
    unsubscribed = _Counter()
    other = _Counter()

    sub = cache.subscribe(("vessels", "vesselBasics", "/vesselbasics"), subscribed, INFREQUENT)
    await cache.fetch(("vessels", "vesselVerbose", "/vesselverbose"), unsubscribed, INFREQUENT)
    await cache.fetch(("terminals", "terminalBasics", "/terminalbasics"), other, INFREQUENT)
    await _settle()
    assert subscribed.calls == 1

    assert cache.invalidate(("vessels",)) == 2
    await _settle()

    assert subscribed.calls == 2
    assert unsubscribed.calls == 1
    assert cache.is_stale(("vessels", "vesselVerbose", "/vesselverbose"))
    assert not cache.is_stale(("terminals", "terminalBasics", "/terminalbasics"))

    await cache.fetch(("vessels", "vesselVerbose", "/vesselverbose"), unsubscribed, INFREQUENT)
    assert unsubscribed.calls == 2
    assert other.calls == 1
    sub.close()
    await cache.close()


@pytest.mark.asyncio
async def test_regaining_focus_refetches_stale_subscriptions() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    fetcher = _Counter()
    key = ("schedule", "activeSeasons", "/activeseasons")

    with cache.subscribe(key, fetcher, INFREQUENT):
        await _settle()
        assert fetcher.calls == 1

        cache.set_focused(False)
        cache.set_focused(True)
        await _settle()
        assert fetcher.calls == 1

        clock.advance(INFREQUENT.stale_time.total_seconds())
        cache.set_focused(False)
        cache.set_focused(True)
        await _settle()
        assert fetcher.calls == 2
    await cache.close()


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_fetch() -> None:
    cache = QueryCache()

    def _broken(_data: Any) -> None:
        raise RuntimeError("listener bug")

    sub = cache.subscribe(("fares", "faresValidDateRange", "/validdaterange"), _Counter(), INFREQUENT, listener=_broken)
    await _settle()
    assert sub.data == 1
    sub.close()
    await cache.close()


@pytest.mark.asyncio
async def test_gc_keeps_subscribed_entries() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    sub = cache.subscribe(("vessels", "vesselBasics", "/vesselbasics"), _Counter(), INFREQUENT)
    await _settle()

    clock.advance(INFREQUENT.gc_time.total_seconds() * 2)
    assert cache.collect_garbage() == 0
    sub.close()
    sub.close()
    clock.advance(INFREQUENT.gc_time.total_seconds())
    assert cache.collect_garbage() == 1
    assert len(cache) == 0
    await cache.close()


@pytest.mark.asyncio
async def test_keys_by_prefix_and_remove() -> None:
    cache = QueryCache()
    await cache.fetch(("vessels", "a"), _Counter(), INFREQUENT)
    await cache.fetch(("terminals", "b"), _Counter(), INFREQUENT)

    assert cache.keys(("vessels",)) == [("vessels", "a")]
    cache.remove(("vessels", "a"))
    assert cache.keys() == [("terminals", "b")]


class _Gated:
    """Fetcher whose first call waits for ``release``; later calls return at once."""

    def __init__(self) -> None:
        self.calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            await self.release.wait()
            return "before flush"
        return "after flush"


@pytest.mark.asyncio
async def test_invalidation_during_fetch_refetches_subscribed_entry() -> None:
    cache = QueryCache()
    fetcher = _Gated()
    key = ("vessels", "vesselBasics", "/vesselbasics")

    sub = cache.subscribe(key, fetcher, INFREQUENT)
    await fetcher.started.wait()
    assert cache.invalidate(("vessels",)) == 1
    fetcher.release.set()
    await _settle()

    assert fetcher.calls == 2
    assert sub.data == "after flush"
    assert not cache.is_stale(key)
    sub.close()
    await cache.close()


@pytest.mark.asyncio
async def test_invalidation_during_fetch_leaves_unsubscribed_entry_stale() -> None:
    cache = QueryCache()
    fetcher = _Gated()
    key = ("terminals", "terminalBasics", "/terminalbasics")

    pending = asyncio.create_task(cache.fetch(key, fetcher, INFREQUENT))
    await fetcher.started.wait()
    cache.invalidate(("terminals",))
    fetcher.release.set()

    assert await pending == "before flush"
    assert cache.is_stale(key)
    assert await cache.fetch(key, fetcher, INFREQUENT) == "after flush"
    assert not cache.is_stale(key)
    await cache.close()


@pytest.mark.asyncio
async def test_invalidate_skips_listed_keys() -> None:
    cache = QueryCache()
    marker = ("schedule", "cacheflushdate")
    routes = ("schedule", "routes", "/routes/2024-01-01")
    await cache.fetch(marker, _Counter(), INFREQUENT)
    await cache.fetch(routes, _Counter(), INFREQUENT)

    assert cache.invalidate(("schedule",), skip=(marker,)) == 1
    assert not cache.is_stale(marker)
    assert cache.is_stale(routes)
    await cache.close()

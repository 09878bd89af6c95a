"""In-memory query cache.

This is the request-layer boundary the cache policies and the coherency
monitor talk to. It keeps one entry per query key, decides staleness from
the entry's :class:`~pywsf.state.policy.CachePolicy`, coalesces concurrent
fetches, retries with back-off, refetches subscribed entries on a timer,
and evicts unused entries once their retention has passed.

Keys are tuples whose first element is the data domain, so a whole domain
can be invalidated with ``invalidate((domain,))``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Collection, Hashable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pywsf.state.policy import CachePolicy

_logger = logging.getLogger(__name__)

QueryKey = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]
DataListener = Callable[[Any], None]

_DEFAULT_GC_INTERVAL_SECONDS = 60.0


class QueryStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class CacheEntry:
    """One cached query."""

    key: QueryKey
    policy: CachePolicy
    fetcher: Fetcher
    last_used: float
    data: Any = None
    error: Exception | None = None
    status: QueryStatus = QueryStatus.PENDING
    updated_at: float | None = None
    invalidated: bool = False
    fetch_count: int = 0
    generation: int = 0
    listeners: list[DataListener] = field(default_factory=list)
    subscribers: int = 0
    fetch_task: asyncio.Task[Any] | None = None
    refetch_task: asyncio.Task[None] | None = None

    @property
    def is_fetching(self) -> bool:
        return self.fetch_task is not None and not self.fetch_task.done()


class Subscription:
    """Handle returned by :meth:`QueryCache.subscribe`; close it when done."""

    def __init__(self, cache: QueryCache, entry: CacheEntry, listener: DataListener | None) -> None:
        self._cache = cache
        self._entry = entry
        self._listener = listener
        self._closed = False

    @property
    def key(self) -> QueryKey:
        return self._entry.key

    @property
    def data(self) -> Any:
        return self._entry.data

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cache._unsubscribe(self._entry, self._listener)  # noqa: SLF001

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """Policy-driven cache of async query results.

    Parameters
    ----------
    clock
        Monotonic seconds source; injectable for deterministic tests.
    sleep
        Awaitable sleep used for back-off and refetch timers.
    gc_interval
        Seconds between background garbage-collection sweeps.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        gc_interval: float = _DEFAULT_GC_INTERVAL_SECONDS,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._gc_interval = gc_interval
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._focused = True
        self._background: set[asyncio.Task[Any]] = set()
        self._gc_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic garbage-collection sweep."""
        if self._gc_task is None or self._gc_task.done():
            self._gc_task = asyncio.get_running_loop().create_task(self._gc_loop())

    async def close(self) -> None:
        """Cancel every timer and in-flight fetch."""
        tasks: list[asyncio.Task[Any]] = list(self._background)
        if self._gc_task is not None:
            tasks.append(self._gc_task)
            self._gc_task = None
        for entry in self._entries.values():
            for task in (entry.fetch_task, entry.refetch_task):
                if task is not None:
                    tasks.append(task)
            entry.refetch_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_entry(self, key: QueryKey) -> CacheEntry | None:
        return self._entries.get(key)

    def get_data(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return None if entry is None else entry.data

    def keys(self, prefix: QueryKey = ()) -> list[QueryKey]:
        return [key for key in self._entries if _key_matches(key, prefix)]

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or self._is_stale(entry)

    @property
    def focused(self) -> bool:
        return self._focused

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(self, key: QueryKey, fetcher: Fetcher, policy: CachePolicy) -> Any:
        """Return cached data for *key*, fetching it if missing or stale.

        Raises the last fetch error once retries are exhausted.
        """
        entry = self._ensure_entry(key, fetcher, policy)
        entry.last_used = self._clock()
        if entry.status == QueryStatus.SUCCESS and not self._is_stale(entry):
            return entry.data
        return await self._run_fetch(entry)

    def subscribe(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        policy: CachePolicy,
        *,
        listener: DataListener | None = None,
    ) -> Subscription:
        """Keep *key* alive and refreshed until the subscription is closed.

        *listener* is called with the new data after every successful fetch.
        """
        entry = self._ensure_entry(key, fetcher, policy)
        entry.subscribers += 1
        entry.last_used = self._clock()
        if listener is not None:
            entry.listeners.append(listener)

        if policy.refetch_interval is not None and (entry.refetch_task is None or entry.refetch_task.done()):
            entry.refetch_task = asyncio.get_running_loop().create_task(self._refetch_loop(entry))

        if self._is_stale(entry) or entry.status != QueryStatus.SUCCESS:
            self._refetch_in_background(entry)
        return Subscription(self, entry, listener)

    def _unsubscribe(self, entry: CacheEntry, listener: DataListener | None) -> None:
        entry.subscribers = max(0, entry.subscribers - 1)
        entry.last_used = self._clock()
        if listener is not None and listener in entry.listeners:
            entry.listeners.remove(listener)
        if entry.subscribers == 0 and entry.refetch_task is not None:
            entry.refetch_task.cancel()
            entry.refetch_task = None

    # ------------------------------------------------------------------
    # Invalidation and focus
    # ------------------------------------------------------------------

    def invalidate(self, prefix: QueryKey, *, skip: Collection[QueryKey] = ()) -> int:
        """Mark every entry under *prefix* stale; refetch the subscribed ones.

        Keys in *skip* are left alone. A fetch already in flight for an
        invalidated entry does not count as fresh; subscribed entries are
        fetched again once it settles.

        Returns the number of entries invalidated.
        """
        count = 0
        for entry in list(self._entries.values()):
            if not _key_matches(entry.key, prefix) or entry.key in skip:
                continue
            entry.invalidated = True
            entry.generation += 1
            count += 1
            if entry.subscribers > 0:
                self._refetch_in_background(entry)
        if count:
            _logger.debug("Invalidated %d cached queries under %s", count, prefix)
        return count

    def remove(self, key: QueryKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None and entry.refetch_task is not None:
            entry.refetch_task.cancel()

    def set_focused(self, focused: bool) -> None:
        """Record focus changes; regaining focus refreshes stale subscribed data."""
        regained = focused and not self._focused
        self._focused = focused
        if not regained:
            return
        for entry in list(self._entries.values()):
            if entry.subscribers > 0 and entry.policy.refetch_on_focus and self._is_stale(entry):
                self._refetch_in_background(entry)

    def collect_garbage(self) -> int:
        """Evict unused entries whose retention has elapsed."""
        now = self._clock()
        evicted = [
            key
            for key, entry in self._entries.items()
            if entry.subscribers == 0 and not entry.is_fetching and entry.policy.is_collectable(entry.last_used, now)
        ]
        for key in evicted:
            self.remove(key)
        if evicted:
            _logger.debug("Evicted %d unused cached queries", len(evicted))
        return len(evicted)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_entry(self, key: QueryKey, fetcher: Fetcher, policy: CachePolicy) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, policy=policy, fetcher=fetcher, last_used=self._clock())
            self._entries[key] = entry
        else:
            # Latest caller wins; mirrors re-rendering with new options.
            entry.fetcher = fetcher
            entry.policy = policy
        return entry

    def _is_stale(self, entry: CacheEntry) -> bool:
        return entry.invalidated or entry.policy.is_stale(entry.updated_at, self._clock())

    async def _run_fetch(self, entry: CacheEntry) -> Any:
        if not entry.is_fetching:
            entry.fetch_task = asyncio.get_running_loop().create_task(self._fetch_with_retry(entry))
        assert entry.fetch_task is not None  # noqa: S101
        # Shield so one impatient caller cannot cancel a fetch others await.
        return await asyncio.shield(entry.fetch_task)

    async def _fetch_with_retry(self, entry: CacheEntry) -> Any:
        policy = entry.policy
        generation = entry.generation
        last_error: Exception | None = None
        for attempt in range(policy.retry + 1):
            try:
                data = await entry.fetcher()
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                _logger.debug("Fetch of %s failed (attempt %d)", entry.key, attempt + 1, exc_info=True)
                if attempt < policy.retry:
                    await self._sleep(policy.retry_delay(attempt))
                continue
            current = entry.generation == generation
            self._store_success(entry, data, current=current)
            if not current and entry.subscribers > 0:
                # Runs after this task has finished, so is_fetching is False.
                asyncio.get_running_loop().call_soon(self._refetch_in_background, entry)
            return data

        assert last_error is not None  # noqa: S101
        entry.status = QueryStatus.ERROR
        entry.error = last_error
        raise last_error

    def _store_success(self, entry: CacheEntry, data: Any, *, current: bool = True) -> None:
        entry.data = data
        entry.error = None
        entry.status = QueryStatus.SUCCESS
        entry.updated_at = self._clock()
        if current:
            entry.invalidated = False
        entry.fetch_count += 1
        for listener in list(entry.listeners):
            try:
                listener(data)
            except Exception:  # noqa: BLE001
                _logger.warning("Listener for %s raised", entry.key, exc_info=True)

    def _refetch_in_background(self, entry: CacheEntry) -> None:
        if entry.is_fetching:
            return
        task = asyncio.get_running_loop().create_task(self._background_fetch(entry))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_fetch(self, entry: CacheEntry) -> None:
        try:
            await self._run_fetch(entry)
        except Exception:  # noqa: BLE001
            _logger.debug("Background refetch of %s failed", entry.key, exc_info=True)

    async def _refetch_loop(self, entry: CacheEntry) -> None:
        interval = entry.policy.refetch_interval
        while interval is not None:
            await self._sleep(interval.total_seconds())
            if self._focused and entry.subscribers > 0:
                await self._background_fetch(entry)
            interval = entry.policy.refetch_interval

    async def _gc_loop(self) -> None:
        while True:
            await self._sleep(self._gc_interval)
            self.collect_garbage()

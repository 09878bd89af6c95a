"""Flush-marker driven cache coherency.

The upstream offers no push invalidation. Instead every domain exposes a
``cacheflushdate`` endpoint returning the instant of its last bulk update.
Polling that marker and comparing it with the previous observation is the
only signal that cached reference data went stale.

Per domain:

- first observation: remember it, do nothing (cold start)
- same instant as before: do nothing
- different instant: notify the domain's listeners, then remember it

Domains never affect each other.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pywsf.ingestion.dates import parse_date_string
from pywsf.state.events import DataDomain, InvalidationEvent
from pywsf.state.policy import COHERENCY_CHECK, CachePolicy
from pywsf.state.store import Fetcher, QueryCache, QueryKey, Subscription

_logger = logging.getLogger(__name__)

InvalidationListener = Callable[[InvalidationEvent], None]

FLUSH_OPERATION = "cacheflushdate"


def flush_key(domain: DataDomain | str) -> QueryKey:
    """Query key under which a domain's flush marker is cached."""
    return (DataDomain(domain), FLUSH_OPERATION)


def _coerce_marker(marker: Any) -> datetime | None:
    if isinstance(marker, datetime):
        return marker
    if isinstance(marker, str):
        return parse_date_string(marker)
    return None


def same_instant(a: datetime, b: datetime) -> bool:
    """Compare two markers by the instant they denote, not by identity."""
    if (a.tzinfo is None) == (b.tzinfo is None):
        return a == b
    # Mixed naive/aware: naive values are local wall time.
    return a.timestamp() == b.timestamp()


class CoherencyMonitor:
    """Tracks the last observed flush marker per domain."""

    def __init__(self, *, clock: Callable[[], datetime] = lambda: datetime.now(UTC)) -> None:
        self._clock = clock
        self._observed: dict[DataDomain, datetime] = {}
        self._listeners: dict[DataDomain, list[InvalidationListener]] = {}

    def add_listener(self, domain: DataDomain | str, listener: InvalidationListener) -> Callable[[], None]:
        """Call *listener* whenever *domain*'s marker changes.

        Returns a function that removes the listener again.
        """
        key = DataDomain(domain)
        listeners = self._listeners.setdefault(key, [])
        listeners.append(listener)

        def _remove() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return _remove

    def last_observed(self, domain: DataDomain | str) -> datetime | None:
        return self._observed.get(DataDomain(domain))

    def reset(self, domain: DataDomain | str | None = None) -> None:
        """Forget observations, for one domain or all of them."""
        if domain is None:
            self._observed.clear()
        else:
            self._observed.pop(DataDomain(domain), None)

    def observe(self, domain: DataDomain | str, marker: datetime | str | None) -> bool:
        """Feed a freshly polled marker for *domain*.

        Returns ``True`` when the observation triggered invalidation. Absent
        or unparseable markers (failed polls) are ignored.
        """
        key = DataDomain(domain)
        current = _coerce_marker(marker)
        if current is None:
            if marker is not None:
                _logger.debug("Ignoring unparseable %s flush marker %r", key, marker)
            return False

        previous = self._observed.get(key)
        if previous is None:
            self._observed[key] = current
            _logger.debug("Initial %s flush marker %s", key, current.isoformat())
            return False

        if same_instant(previous, current):
            return False

        _logger.debug("%s flush marker moved %s -> %s", key, previous.isoformat(), current.isoformat())
        event = InvalidationEvent(domain=key, previous=previous, current=current, observed_at=self._clock())
        for listener in list(self._listeners.get(key, ())):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                _logger.warning("Invalidation listener for %s raised", key, exc_info=True)
        self._observed[key] = current
        return True

    def on_domain_flush_observed(self, domain: DataDomain | str, marker: datetime | str | None) -> bool:
        """Registration hook for request layers that poll markers themselves."""
        return self.observe(domain, marker)


class CoherencyPoller:
    """Polls flush markers through a :class:`QueryCache` and feeds a monitor.

    Each watched domain holds one subscription to its flush-marker query
    under the coherency-check policy, so polling cadence, retry and focus
    handling come from the cache.
    """

    def __init__(
        self,
        monitor: CoherencyMonitor,
        cache: QueryCache,
        marker_fetcher: Callable[[DataDomain], Fetcher],
        *,
        policy: CachePolicy = COHERENCY_CHECK,
    ) -> None:
        self._monitor = monitor
        self._cache = cache
        self._marker_fetcher = marker_fetcher
        self._policy = policy
        self._subscriptions: dict[DataDomain, Subscription] = {}

    @property
    def watched(self) -> frozenset[DataDomain]:
        return frozenset(self._subscriptions)

    def watch(self, domain: DataDomain | str) -> None:
        key = DataDomain(domain)
        if key in self._subscriptions:
            return
        self._subscriptions[key] = self._cache.subscribe(
            flush_key(key),
            self._marker_fetcher(key),
            self._policy,
            listener=functools.partial(self._monitor.observe, key),
        )

    def unwatch(self, domain: DataDomain | str) -> None:
        subscription = self._subscriptions.pop(DataDomain(domain), None)
        if subscription is not None:
            subscription.close()

    def close(self) -> None:
        for domain in list(self._subscriptions):
            self.unwatch(domain)

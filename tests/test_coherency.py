from __future__ import annotations

from datetime import UTC, datetime

from pywsf.state.coherency import CoherencyMonitor, flush_key, same_instant
from pywsf.state.events import DataDomain, InvalidationEvent


def _monitor_with_log() -> tuple[CoherencyMonitor, list[InvalidationEvent]]:
    monitor = CoherencyMonitor(clock=lambda: datetime(2026, 1, 1, tzinfo=UTC))
    events: list[InvalidationEvent] = []
    for domain in DataDomain:
        monitor.add_listener(domain, events.append)
    return monitor, events


def test_cold_start_does_not_invalidate() -> None:
    monitor, events = _monitor_with_log()

    assert monitor.observe("vessels", datetime(2024, 1, 1)) is False

    assert events == []
    assert monitor.last_observed("vessels") == datetime(2024, 1, 1)


def test_marker_sequence_invalidates_once() -> None:
    monitor, events = _monitor_with_log()

    fired = [
        monitor.observe(DataDomain.SCHEDULE, marker)
        for marker in (datetime(2024, 1, 1), datetime(2024, 1, 1), datetime(2024, 2, 1))
    ]

    assert fired == [False, False, True]
    (event,) = events
    assert event.domain == DataDomain.SCHEDULE
    assert event.previous == datetime(2024, 1, 1)
    assert event.current == datetime(2024, 2, 1)
    assert monitor.last_observed(DataDomain.SCHEDULE) == datetime(2024, 2, 1)


def test_marker_moving_backwards_still_invalidates() -> None:
    monitor, events = _monitor_with_log()
    monitor.observe("fares", datetime(2024, 2, 1))
    assert monitor.observe("fares", datetime(2024, 1, 1)) is True
    assert len(events) == 1


def test_domains_are_isolated() -> None:
    monitor, events = _monitor_with_log()

    monitor.observe("vessels", datetime(2024, 1, 1))
    monitor.observe("terminals", datetime(2024, 1, 1))
    monitor.observe("vessels", datetime(2024, 3, 1))

    assert [event.domain for event in events] == [DataDomain.VESSELS]
    assert monitor.last_observed("terminals") == datetime(2024, 1, 1)


def test_string_markers_compare_by_instant() -> None:
    monitor, events = _monitor_with_log()

    monitor.observe("vessels", "/Date(1704067200000)/")
    assert monitor.observe("vessels", datetime(2024, 1, 1, tzinfo=UTC)) is False
    assert monitor.observe("vessels", "/Date(1706745600000-0800)/") is True
    assert len(events) == 1


def test_missing_or_unparseable_markers_are_ignored() -> None:
    monitor, events = _monitor_with_log()

    assert monitor.observe("vessels", None) is False
    assert monitor.observe("vessels", "not a date") is False
    assert monitor.last_observed("vessels") is None

    monitor.observe("vessels", datetime(2024, 1, 1))
    assert monitor.observe("vessels", None) is False
    assert monitor.last_observed("vessels") == datetime(2024, 1, 1)
    assert events == []


def test_failing_listener_does_not_block_others() -> None:
    monitor = CoherencyMonitor()
    seen: list[DataDomain] = []

    def _broken(_event: InvalidationEvent) -> None:
        raise RuntimeError("listener bug")

    monitor.add_listener("vessels", _broken)
    monitor.add_listener("vessels", lambda event: seen.append(event.domain))

    monitor.observe("vessels", datetime(2024, 1, 1))
    assert monitor.observe("vessels", datetime(2024, 1, 2)) is True
    assert seen == [DataDomain.VESSELS]
    assert monitor.last_observed("vessels") == datetime(2024, 1, 2)


def test_removed_listener_is_not_called() -> None:
    monitor = CoherencyMonitor()
    seen: list[InvalidationEvent] = []
    remove = monitor.add_listener("vessels", seen.append)
    remove()
    remove()

    monitor.observe("vessels", datetime(2024, 1, 1))
    monitor.observe("vessels", datetime(2024, 1, 2))
    assert seen == []


def test_reset_restores_cold_start() -> None:
    monitor, events = _monitor_with_log()
    monitor.observe("vessels", datetime(2024, 1, 1))
    monitor.reset("vessels")

    assert monitor.observe("vessels", datetime(2024, 5, 1)) is False
    assert events == []


def test_on_domain_flush_observed_delegates() -> None:
    monitor, events = _monitor_with_log()
    monitor.on_domain_flush_observed("terminals", datetime(2024, 1, 1))
    assert monitor.on_domain_flush_observed("terminals", datetime(2024, 1, 2)) is True
    assert len(events) == 1


def test_flush_key_and_same_instant() -> None:
    assert flush_key("fares") == (DataDomain.FARES, "cacheflushdate")
    assert same_instant(datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 1, tzinfo=UTC))
    assert not same_instant(datetime(2024, 1, 1), datetime(2024, 1, 2))

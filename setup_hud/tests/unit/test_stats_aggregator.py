"""Unit tests for dashboard stats aggregation."""

from __future__ import annotations

from setup_hud.protocol.messages import SETUP_MANAGER_EVENT_ADAPTER, StoredEvent
from setup_hud.stats.aggregator import compute_stats, round_half_up


def _stored(payload: dict, received_ms: int) -> StoredEvent:
    return StoredEvent.create(SETUP_MANAGER_EVENT_ADAPTER.validate_python(payload), received_ms)


def test_empty_window_defaults() -> None:
    stats = compute_stats([])
    assert stats.model_dump() == {
        "total": 0,
        "started": 0,
        "finished": 0,
        "avgDuration": 0,
        "successRate": 100,
        "devices": 0,
        "failedActions": 0,
        "lastEventTime": None,
    }


def test_counts_devices_failures_and_last_event(started_payload, finished_payload) -> None:
    other = dict(started_payload, serialNumber="TEST002")
    events = [
        _stored(started_payload, 1_000),
        _stored(other, 2_000),
        _stored(finished_payload, 3_000),
    ]

    stats = compute_stats(events)

    assert stats.total == 3
    assert stats.started == 2
    assert stats.finished == 1
    assert stats.devices == 2
    assert stats.failedActions == 1
    assert stats.avgDuration == 750
    assert stats.lastEventTime == 3_000


def test_success_rate_is_per_run(finished_payload) -> None:
    clean = dict(finished_payload, enrollmentActions=[{"label": "A", "status": "finished"}])
    no_actions = {key: value for key, value in finished_payload.items() if key != "enrollmentActions"}
    events = [
        _stored(finished_payload, 1_000),
        _stored(clean, 2_000),
        _stored(no_actions, 3_000),
    ]

    stats = compute_stats(events)

    # two of three runs had no failed action
    assert stats.successRate == 67
    assert stats.failedActions == 1


def test_average_duration_rounds_half_up(finished_payload) -> None:
    events = [
        _stored(dict(finished_payload, duration=10), 1_000),
        _stored(dict(finished_payload, duration=11), 2_000),
    ]
    assert compute_stats(events).avgDuration == 11
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2

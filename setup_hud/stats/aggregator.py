"""Stats layer: pure reduction of stored events into dashboard counters.

``successRate`` uses a single definition everywhere: the share of finished runs
whose enrollment actions all report ``finished``. Runs without actions count as
successful, and an empty window reports 100.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from setup_hud.protocol.messages import FinishedEvent, StatsSummary, StoredEvent


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_successful_run(event: FinishedEvent) -> bool:
    actions = event.enrollmentActions or []
    return all(action.status == "finished" for action in actions)


def failed_action_count(event: FinishedEvent) -> int:
    return sum(1 for action in event.enrollmentActions or [] if action.status == "failed")


def compute_stats(events: Iterable[StoredEvent]) -> StatsSummary:
    window = list(events)
    finished = [item.payload for item in window if isinstance(item.payload, FinishedEvent)]

    avg_duration = 0
    success_rate = 100
    if finished:
        avg_duration = round_half_up(sum(item.duration for item in finished) / len(finished))
        successes = sum(1 for item in finished if is_successful_run(item))
        success_rate = round_half_up(successes / len(finished) * 100)

    return StatsSummary(
        total=len(window),
        started=len(window) - len(finished),
        finished=len(finished),
        avgDuration=avg_duration,
        successRate=success_rate,
        devices=len({item.payload.serialNumber for item in window}),
        failedActions=sum(failed_action_count(item) for item in finished),
        lastEventTime=max((item.timestamp for item in window), default=None),
    )

"""Viewer layer: pure client-side state for the dashboard session protocol.

Nothing here touches a socket or a timer. ``ReconnectStateMachine`` decides
*what* happens on open/close and how long to wait; a driver (see
``viewer.client``) owns the actual scheduling.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import ValidationError

from setup_hud.infra.observability.logger import get_logger
from setup_hud.protocol.messages import StatsSummary, StoredEvent
from setup_hud.stats.aggregator import compute_stats

logger = get_logger(__name__)

MAX_LOCAL_EVENTS = 200
HISTORY_REQUEST_LIMIT = 200
PING_INTERVAL_SECONDS = 30.0
INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0
MAX_RECONNECT_ATTEMPTS = 10


def history_request() -> str:
    return json.dumps({"type": "request-history", "limit": HISTORY_REQUEST_LIMIT})


def ping_request() -> str:
    return json.dumps({"type": "ping"})


def backoff_delay(attempt: int) -> float:
    """Delay before reconnect ``attempt`` (1-based): 1, 2, 4, ... capped at 30 seconds."""
    exponent = max(attempt, 1) - 1
    return min(INITIAL_BACKOFF_SECONDS * (2**exponent), MAX_BACKOFF_SECONDS)


def backoff_schedule(max_attempts: int = MAX_RECONNECT_ATTEMPTS) -> list[float]:
    return [backoff_delay(attempt) for attempt in range(1, max_attempts + 1)]


class ConnectionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    ABANDONED = "abandoned"


class InvalidPhaseTransition(RuntimeError):
    """Raised when the driver reports an event the current phase cannot accept."""


class ReconnectStateMachine:
    """IDLE -> CONNECTING -> OPEN -> RECONNECTING(attempt) -> ABANDONED."""

    def __init__(self, max_attempts: int = MAX_RECONNECT_ATTEMPTS) -> None:
        self._max_attempts = max_attempts
        self.phase = ConnectionPhase.IDLE
        self.attempt = 0

    @property
    def connected(self) -> bool:
        return self.phase is ConnectionPhase.OPEN

    @property
    def abandoned(self) -> bool:
        return self.phase is ConnectionPhase.ABANDONED

    def start(self) -> None:
        self._expect(ConnectionPhase.IDLE)
        self.phase = ConnectionPhase.CONNECTING

    def on_open(self) -> None:
        self._expect(ConnectionPhase.CONNECTING)
        self.phase = ConnectionPhase.OPEN
        self.attempt = 0

    def on_close(self) -> float | None:
        """Record a close or failed connect; return the wait before retrying, or None."""
        self._expect(ConnectionPhase.CONNECTING, ConnectionPhase.OPEN)
        if self.attempt >= self._max_attempts:
            self.phase = ConnectionPhase.ABANDONED
            return None
        self.attempt += 1
        self.phase = ConnectionPhase.RECONNECTING
        return backoff_delay(self.attempt)

    def on_retry(self) -> None:
        self._expect(ConnectionPhase.RECONNECTING)
        self.phase = ConnectionPhase.CONNECTING

    def _expect(self, *phases: ConnectionPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(phase.value for phase in phases)
            raise InvalidPhaseTransition(f"phase is {self.phase.value}, expected one of: {allowed}")


class ViewerEventLog:
    """Local newest-first event set, de-duplicated by eventId."""

    def __init__(self, max_events: int = MAX_LOCAL_EVENTS) -> None:
        self._max_events = max_events
        self._events: list[StoredEvent] = []
        self._ids: set[str] = set()

    @property
    def events(self) -> list[StoredEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    def replace_with_history(self, events: list[StoredEvent]) -> None:
        """Replace local state with a history snapshot; the first occurrence of an id wins."""
        unique: list[StoredEvent] = []
        seen: set[str] = set()
        for event in events:
            if event.eventId in seen:
                continue
            seen.add(event.eventId)
            unique.append(event)
        self._events = unique
        self._ids = seen

    def merge_live(self, event: StoredEvent) -> bool:
        """Prepend an unseen live event and trim to the cap; return False for duplicates."""
        if event.eventId in self._ids:
            return False
        self._events.insert(0, event)
        self._ids.add(event.eventId)
        for dropped in self._events[self._max_events:]:
            self._ids.discard(dropped.eventId)
        del self._events[self._max_events:]
        return True

    def stats(self) -> StatsSummary:
        return compute_stats(self._events)

    def apply(self, raw: str | bytes) -> str | None:
        """Apply one server message; return its type when it changed or was recognised."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("viewer.message_unparseable bytes=%s", len(raw))
            return None
        if not isinstance(message, dict):
            return None

        kind = message.get("type")
        if kind == "history":
            self.replace_with_history(_decode_events(message.get("data")))
        elif kind == "setup-manager-event":
            decoded = _decode_events([message.get("data")])
            if decoded:
                self.merge_live(decoded[0])
        elif kind == "error":
            logger.warning("viewer.server_error message=%s", message.get("message"))
        return kind if isinstance(kind, str) else None


def _decode_events(raw: Any) -> list[StoredEvent]:
    if not isinstance(raw, list):
        return []
    decoded: list[StoredEvent] = []
    for item in raw:
        try:
            decoded.append(StoredEvent.model_validate(item))
        except ValidationError:
            logger.warning("viewer.event_invalid")
    return decoded

"""Ingest layer: total, side-effect free validation of untrusted webhook JSON.

Rules run in a fixed order and stop at the first failure. The rejection reason
is meant for server logs only; HTTP callers must answer with a generic message.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from pydantic import ValidationError

from setup_hud.protocol.messages import (
    FINISHED_EVENT,
    SETUP_MANAGER_EVENT_ADAPTER,
    STARTED_EVENT,
    FinishedEvent,
    StartedEvent,
)

VALID_EVENTS = (STARTED_EVENT, FINISHED_EVENT)
EXPECTED_NAMES = {STARTED_EVENT: "Started", FINISHED_EVENT: "Finished"}

REQUIRED_BASE_FIELDS = (
    "name",
    "event",
    "timestamp",
    "started",
    "modelName",
    "modelIdentifier",
    "macOSBuild",
    "macOSVersion",
    "serialNumber",
    "setupManagerVersion",
)
OPTIONAL_STRING_FIELDS = ("jamfProVersion", "jssID", "computerName")
USER_ENTRY_FIELDS = ("department", "computerName", "userID", "assetTag")
THROUGHPUT_FIELDS = ("uploadThroughput", "downloadThroughput")

# Keys that would reach object prototypes if the payload were ever merged by a JS consumer.
FORBIDDEN_KEYS = frozenset({"__proto__", "constructor", "prototype"})


@dataclass(frozen=True)
class Accepted:
    event: StartedEvent | FinishedEvent


@dataclass(frozen=True)
class Rejected:
    reason: str


ValidationResult = Union[Accepted, Rejected]


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_valid_timestamp(value: Any) -> bool:
    """Accept ISO 8601 date-times, including a trailing ``Z``."""
    if not is_non_empty_string(value):
        return False
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def is_non_negative_number(value: Any) -> bool:
    # bool is an int subclass but never a JSON number.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        finite = math.isfinite(value)
    except OverflowError:
        # Integers beyond float range cannot be stored as a number.
        return False
    return finite and value >= 0


def has_forbidden_keys(obj: dict[str, Any]) -> bool:
    return any(key in FORBIDDEN_KEYS for key in obj)


def _enrollment_action_error(action: Any) -> str | None:
    if not isinstance(action, dict):
        return "not an object"
    if has_forbidden_keys(action):
        return "forbidden property names"
    if not is_non_empty_string(action.get("label")):
        return "missing label"
    if action.get("status") not in ("finished", "failed"):
        return "invalid status"
    return None


def _user_entry_valid(entry: Any) -> bool:
    if not isinstance(entry, dict) or has_forbidden_keys(entry):
        return False
    for field in USER_ENTRY_FIELDS:
        if field in entry and not isinstance(entry[field], str):
            return False
    return True


def _finished_error(obj: dict[str, Any]) -> str | None:
    if not is_non_negative_number(obj.get("duration")):
        return "duration must be a non-negative number"
    if not is_non_empty_string(obj.get("finished")):
        return "Missing or invalid required field: finished"
    if not is_valid_timestamp(obj["finished"]):
        return "Invalid finished timestamp format"

    if "enrollmentActions" in obj:
        actions = obj["enrollmentActions"]
        if not isinstance(actions, list):
            return "enrollmentActions must be an array"
        for index, action in enumerate(actions):
            problem = _enrollment_action_error(action)
            if problem:
                return f"Invalid enrollment action at index {index}: {problem}"

    if "userEntry" in obj and not _user_entry_valid(obj["userEntry"]):
        return "Invalid userEntry object"

    for field in THROUGHPUT_FIELDS:
        if field in obj and not is_non_negative_number(obj[field]):
            return f"{field} must be a non-negative number"
    return None


def validate_payload(raw: Any) -> ValidationResult:
    """Validate one decoded webhook body and build the typed event on success."""
    if not isinstance(raw, dict):
        return Rejected("Payload must be a non-null object")
    if has_forbidden_keys(raw):
        return Rejected("Payload contains forbidden property names")

    event_type = raw.get("event")
    if event_type not in VALID_EVENTS:
        return Rejected("Invalid event type")

    for field in REQUIRED_BASE_FIELDS:
        if not is_non_empty_string(raw.get(field)):
            return Rejected(f"Missing or invalid required field: {field}")

    if not is_valid_timestamp(raw["timestamp"]):
        return Rejected("Invalid timestamp format")
    if not is_valid_timestamp(raw["started"]):
        return Rejected("Invalid started timestamp format")

    expected_name = EXPECTED_NAMES[event_type]
    if raw["name"] != expected_name:
        return Rejected(f'name must be "{expected_name}" for {event_type} events')

    if event_type == FINISHED_EVENT:
        problem = _finished_error(raw)
        if problem:
            return Rejected(problem)

    for field in OPTIONAL_STRING_FIELDS:
        if field in raw and not isinstance(raw[field], str):
            return Rejected(f"{field} must be a string if provided")

    try:
        event = SETUP_MANAGER_EVENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        return Rejected(f"schema mismatch: {exc.error_count()} error(s)")
    return Accepted(event)

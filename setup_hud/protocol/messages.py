"""Protocol layer: webhook payloads, stored events and wire DTOs shared by API, hub and viewer."""

from __future__ import annotations

import time
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

STARTED_EVENT = "com.jamf.setupmanager.started"
FINISHED_EVENT = "com.jamf.setupmanager.finished"

ActionStatus = Literal["finished", "failed"]


def utc_now_ms() -> int:
    return int(time.time() * 1000)


class EnrollmentAction(BaseModel):
    """One named enrollment sub-step reported by a finished run."""

    model_config = ConfigDict(extra="ignore")

    label: str
    status: ActionStatus


class UserEntry(BaseModel):
    """Optional user context captured during setup."""

    model_config = ConfigDict(extra="ignore")

    department: str | None = None
    computerName: str | None = None
    userID: str | None = None
    assetTag: str | None = None


class StartedEvent(BaseModel):
    """Webhook sent when Setup Manager begins on a device."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Literal["Started"]
    event: Literal["com.jamf.setupmanager.started"]
    timestamp: str
    started: str
    modelName: str
    modelIdentifier: str
    macOSBuild: str
    macOSVersion: str
    serialNumber: str
    setupManagerVersion: str
    jamfProVersion: str | None = None
    jssID: str | None = None


class FinishedEvent(BaseModel):
    """Webhook sent when Setup Manager completes, with timing and action outcomes."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Literal["Finished"]
    event: Literal["com.jamf.setupmanager.finished"]
    timestamp: str
    started: str
    finished: str
    duration: float = Field(..., ge=0)
    modelName: str
    modelIdentifier: str
    macOSBuild: str
    macOSVersion: str
    serialNumber: str
    setupManagerVersion: str
    jamfProVersion: str | None = None
    jssID: str | None = None
    computerName: str | None = None
    userEntry: UserEntry | None = None
    enrollmentActions: list[EnrollmentAction] | None = None
    uploadThroughput: float | None = Field(default=None, ge=0)
    downloadThroughput: float | None = Field(default=None, ge=0)


SetupManagerEvent = Annotated[Union[StartedEvent, FinishedEvent], Field(discriminator="event")]
SETUP_MANAGER_EVENT_ADAPTER: TypeAdapter[StartedEvent | FinishedEvent] = TypeAdapter(SetupManagerEvent)


def build_event_id(event_type: str, serial_number: str, received_ms: int) -> str:
    return f"{event_type}:{serial_number}:{received_ms}"


class StoredEvent(BaseModel):
    """Validated event plus server receipt time (epoch ms) and derived identifier."""

    model_config = ConfigDict(frozen=True)

    payload: SetupManagerEvent
    timestamp: int
    eventId: str

    @classmethod
    def create(cls, payload: StartedEvent | FinishedEvent, received_ms: int) -> "StoredEvent":
        return cls(
            payload=payload,
            timestamp=received_ms,
            eventId=build_event_id(payload.event, payload.serialNumber, received_ms),
        )

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


# ---- HTTP DTOs ----------------------------------------------------------


class WebhookAccepted(BaseModel):
    """Successful ingestion response."""

    success: bool = True
    eventId: str


class ErrorBody(BaseModel):
    """Generic non-leaking error body."""

    error: str


class StatsSummary(BaseModel):
    """Aggregated counters over a window of stored events."""

    total: int = 0
    started: int = 0
    finished: int = 0
    avgDuration: int = 0
    successRate: int = 100
    devices: int = 0
    failedActions: int = 0
    lastEventTime: int | None = None


class HealthStatus(BaseModel):
    """Liveness report covering store and hub reachability."""

    status: Literal["healthy", "degraded"]
    timestamp: int
    store: str
    hub: str
    room: str
    connections: int | None = None


# ---- WebSocket messages -------------------------------------------------


class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"
    timestamp: int
    message: str = "Connected to Setup Manager dashboard"


class HistoryMessage(BaseModel):
    type: Literal["history"] = "history"
    data: list[StoredEvent] = Field(default_factory=list)


class LiveEventMessage(BaseModel):
    type: Literal["setup-manager-event"] = "setup-manager-event"
    data: StoredEvent


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"
    timestamp: int


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


def dump_message(message: BaseModel) -> str:
    """Serialize one outbound WebSocket message."""
    return message.model_dump_json(exclude_none=True)

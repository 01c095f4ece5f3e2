"""Hub layer: per-connection viewer session and its lifecycle states."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from uuid import uuid4


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CONNECTING: frozenset({SessionState.OPEN}),
    SessionState.OPEN: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class InvalidSessionTransition(RuntimeError):
    """Raised when a session is moved outside CONNECTING -> OPEN -> CLOSED."""


class SessionClosedError(RuntimeError):
    """Raised when sending on a session that already reached CLOSED."""


class SessionTransport(Protocol):
    """Subset of ``starlette.websockets.WebSocket`` the hub relies on."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


@dataclass(eq=False)
class ViewerSession:
    """Ephemeral state for one live viewer; owned and mutated only by the hub."""

    transport: SessionTransport
    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: SessionState = SessionState.CONNECTING
    connected_at: float = field(default_factory=time.time)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidSessionTransition(
                f"session {self.session_id}: {self.state.value} -> {target.value}"
            )
        self.state = target

    async def send(self, text: str) -> None:
        if self.is_closed:
            raise SessionClosedError(f"session {self.session_id} is closed")
        await self.transport.send_text(text)

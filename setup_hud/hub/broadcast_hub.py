"""Hub layer: single-room broadcast actor with history replay for live viewers.

All membership changes and every transport write go through one hub-wide
``asyncio.Lock`` so joins, leaves and broadcasts are serialized on the event
loop. The hub keeps no copy of events; history is read through the store client.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from setup_hud.hub.session import SessionState, SessionTransport, ViewerSession
from setup_hud.infra.db.event_store import EventStoreClient
from setup_hud.infra.db.kv_store import StoreError
from setup_hud.infra.observability.logger import get_logger
from setup_hud.protocol.messages import (
    ConnectedMessage,
    ErrorMessage,
    HistoryMessage,
    LiveEventMessage,
    PongMessage,
    StoredEvent,
    dump_message,
    utc_now_ms,
)

logger = get_logger(__name__)

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001


@dataclass(frozen=True)
class BroadcastOutcome:
    """Per-call fan-out counters."""

    attempted: int
    succeeded: int
    failed: int


def clamp_history_limit(raw: Any, *, maximum: int) -> int:
    """Clamp a client-supplied limit to [1, maximum]; non-numbers mean ``maximum``."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return maximum
    if not math.isfinite(raw):
        return maximum if raw > 0 else 1
    return max(1, min(int(raw), maximum))


class BroadcastHub:
    """Process-wide room that owns the live session set."""

    def __init__(
        self,
        store: EventStoreClient,
        *,
        room: str = "main",
        history_limit: int = 200,
        max_message_bytes: int = 4096,
    ) -> None:
        self._store = store
        self._room = room
        self._history_limit = max(1, history_limit)
        self._max_message_bytes = max(1, max_message_bytes)
        self._sessions: set[ViewerSession] = set()
        self._mutex = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def room(self) -> str:
        return self._room

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def connection_count(self) -> int:
        return len(self._sessions)

    async def join(self, transport: SessionTransport) -> ViewerSession:
        """Accept, register, acknowledge, then replay history in the background."""
        session = ViewerSession(transport=transport)
        await transport.accept()
        async with self._mutex:
            self._sessions.add(session)
            session.transition(SessionState.OPEN)
            try:
                await session.send(dump_message(ConnectedMessage(timestamp=utc_now_ms())))
            except Exception:
                self._sessions.discard(session)
                session.transition(SessionState.CLOSED)
                raise
        logger.info(
            "hub.join room=%s session=%s connections=%s",
            self._room,
            session.session_id,
            self.connection_count(),
        )
        self._spawn(self._send_history(session, self._history_limit))
        return session

    async def disconnect(
        self,
        session: ViewerSession,
        code: int = NORMAL_CLOSURE,
        *,
        close_transport: bool = True,
    ) -> None:
        """Deregister and close. Idempotent once the session is CLOSED."""
        async with self._mutex:
            self._sessions.discard(session)
            if session.is_closed:
                return
            if session.is_open:
                session.transition(SessionState.CLOSED)
        logger.info(
            "hub.leave room=%s session=%s code=%s duration=%.1fs connections=%s",
            self._room,
            session.session_id,
            code,
            time.time() - session.connected_at,
            self.connection_count(),
        )
        if not close_transport:
            return
        try:
            await session.transport.close(code=code)
        except (RuntimeError, OSError) as exc:
            # Transport already torn down by the peer.
            logger.debug("hub.close_failed session=%s error=%s", session.session_id, exc)

    async def broadcast(self, event: StoredEvent) -> BroadcastOutcome:
        """Send one live event to every registered session, counting failures."""
        text = dump_message(LiveEventMessage(data=event))
        succeeded = 0
        failed = 0
        async with self._mutex:
            targets = list(self._sessions)
            for session in targets:
                try:
                    await session.send(text)
                    succeeded += 1
                except Exception as exc:
                    failed += 1
                    logger.warning(
                        "hub.send_failed session=%s event_id=%s error=%s",
                        session.session_id,
                        event.eventId,
                        exc,
                    )
        outcome = BroadcastOutcome(attempted=len(targets), succeeded=succeeded, failed=failed)
        logger.info(
            "hub.broadcast event_id=%s attempted=%s succeeded=%s failed=%s",
            event.eventId,
            outcome.attempted,
            outcome.succeeded,
            outcome.failed,
        )
        return outcome

    async def history(self, limit: int) -> list[StoredEvent]:
        """Most recent stored events, newest first, limit clamped to the hub maximum."""
        safe_limit = clamp_history_limit(limit, maximum=self._history_limit)
        return await run_in_threadpool(self._store.recent, safe_limit)

    async def handle_client_message(self, session: ViewerSession, message: str | bytes) -> None:
        size = len(message) if isinstance(message, bytes) else len(message.encode("utf-8"))
        if size > self._max_message_bytes:
            logger.warning("hub.message_too_large session=%s bytes=%s", session.session_id, size)
            await self._reply(session, ErrorMessage(message="Message too large"))
            return

        try:
            data = json.loads(message)
        except (ValueError, RecursionError):
            logger.info("hub.message_unparseable session=%s bytes=%s", session.session_id, size)
            return
        if not isinstance(data, dict):
            logger.info("hub.message_ignored session=%s reason=not_object", session.session_id)
            return

        kind = data.get("type")
        if kind == "ping":
            await self._reply(session, PongMessage(timestamp=utc_now_ms()))
        elif kind == "request-history":
            limit = clamp_history_limit(data.get("limit"), maximum=self._history_limit)
            await self._send_history(session, limit)
        else:
            logger.debug("hub.message_ignored session=%s type=%s", session.session_id, kind)

    async def close_all(self) -> None:
        """Shutdown hook: close every session and cancel pending replays."""
        for task in list(self._background):
            task.cancel()
        for session in list(self._sessions):
            await self.disconnect(session, GOING_AWAY)

    async def _reply(self, session: ViewerSession, message: Any) -> None:
        async with self._mutex:
            if not session.is_open:
                return
            await session.send(dump_message(message))

    async def _send_history(self, session: ViewerSession, limit: int) -> None:
        try:
            events = await self.history(limit)
        except StoreError as exc:
            logger.error("hub.history_failed session=%s error=%s", session.session_id, exc)
            await self._reply(session, ErrorMessage(message="History unavailable"))
            return
        await self._reply(session, HistoryMessage(data=events))
        logger.debug("hub.history_sent session=%s count=%s", session.session_id, len(events))

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("hub.background_failed error=%s", exc)

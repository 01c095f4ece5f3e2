"""Ingest layer: validate -> persist -> broadcast orchestration for one webhook call."""

from __future__ import annotations

import json
import time
from threading import Lock
from typing import Any, Callable

from starlette.concurrency import run_in_threadpool

from setup_hud.hub.broadcast_hub import BroadcastHub
from setup_hud.infra.db.event_store import EventStoreClient
from setup_hud.infra.db.kv_store import StoreError
from setup_hud.infra.observability.logger import get_logger
from setup_hud.ingest.auth import is_authorized
from setup_hud.ingest.validator import Rejected, validate_payload
from setup_hud.protocol.messages import StoredEvent

logger = get_logger(__name__)

JSON_MEDIA_TYPE = "application/json"


class IngestionError(Exception):
    """Request-scoped rejection carrying the HTTP status and a non-leaking message."""

    def __init__(self, status_code: int, public_message: str, *, reason: str | None = None) -> None:
        super().__init__(reason or public_message)
        self.status_code = status_code
        self.public_message = public_message
        self.reason = reason or public_message


class ReceiptClock:
    """Epoch-millisecond receipt times that never repeat within this process."""

    def __init__(self, source: Callable[[], float] = time.time) -> None:
        self._source = source
        self._last = 0
        self._lock = Lock()

    def next_ms(self) -> int:
        with self._lock:
            candidate = int(self._source() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


def parse_content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


class IngestionPipeline:
    """Stateless per-call orchestration: preconditions, parse, validate, store, fan out."""

    def __init__(
        self,
        *,
        store: EventStoreClient,
        hub: BroadcastHub,
        webhook_secret: str = "",
        max_body_bytes: int = 8192,
        clock: ReceiptClock | None = None,
    ) -> None:
        self._store = store
        self._hub = hub
        self._webhook_secret = webhook_secret
        self._max_body_bytes = max_body_bytes
        self._clock = clock or ReceiptClock()

    @property
    def max_body_bytes(self) -> int:
        return self._max_body_bytes

    def check_preconditions(
        self,
        *,
        content_length: str | None,
        content_type: str | None,
        authorization: str | None,
    ) -> None:
        """Header-only checks, run before any body byte is read."""
        declared = parse_content_length(content_length)
        if declared is not None and declared > self._max_body_bytes:
            raise IngestionError(413, "Payload too large", reason=f"declared length {declared}")
        if not content_type or JSON_MEDIA_TYPE not in content_type.lower():
            raise IngestionError(
                415,
                "Content-Type must be application/json",
                reason=f"content type {content_type!r}",
            )
        if not is_authorized(authorization, self._webhook_secret):
            raise IngestionError(401, "Unauthorized", reason="missing or mismatched bearer token")

    async def ingest(self, body: bytes) -> StoredEvent:
        if len(body) > self._max_body_bytes:
            raise IngestionError(413, "Payload too large", reason=f"body length {len(body)}")

        payload = self._parse(body)
        result = validate_payload(payload)
        if isinstance(result, Rejected):
            raise IngestionError(400, "Invalid webhook payload", reason=result.reason)

        stored = StoredEvent.create(result.event, self._clock.next_ms())
        try:
            await run_in_threadpool(self._store.append, stored)
        except StoreError as exc:
            logger.error("webhook.store_failed event_id=%s error=%s", stored.eventId, exc)
            raise IngestionError(500, "Failed to store event", reason=str(exc)) from exc

        outcome = await self._hub.broadcast(stored)
        logger.info(
            "webhook.accepted event_id=%s viewers=%s delivered=%s",
            stored.eventId,
            outcome.attempted,
            outcome.succeeded,
        )
        return stored

    @staticmethod
    def _parse(body: bytes) -> Any:
        try:
            return json.loads(body)
        except (ValueError, RecursionError) as exc:
            raise IngestionError(400, "Invalid JSON payload", reason=f"json: {exc}") from exc

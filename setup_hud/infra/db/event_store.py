"""Data layer: StoredEvent-aware client over a TTL key-value backend."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError

from setup_hud.infra.db.kv_store import JsonlKVStore, KeyValueBackend, MemoryKVStore, StoreError
from setup_hud.infra.observability.logger import get_logger
from setup_hud.protocol.messages import StoredEvent

logger = get_logger(__name__)


def newest_first(events: list[StoredEvent]) -> list[StoredEvent]:
    return sorted(events, key=lambda item: item.timestamp, reverse=True)


class EventStoreClient:
    """Append-only writes keyed by eventId and bounded newest-first reads.

    The client never updates or deletes; entries leave the backend by TTL only.
    """

    def __init__(self, backend: KeyValueBackend, *, ttl_seconds: int) -> None:
        self._backend = backend
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def append(self, event: StoredEvent) -> None:
        self._backend.put(event.eventId, event.to_json(), ttl_seconds=self._ttl_seconds)

    def get(self, event_id: str) -> StoredEvent | None:
        raw = self._backend.get(event_id)
        if raw is None:
            return None
        return self._decode(event_id, raw)

    def recent(self, limit: int) -> list[StoredEvent]:
        """Read up to ``limit`` entries, skip corrupt ones, return newest first."""
        rows = self._backend.list_recent(limit=max(1, limit))
        events: list[StoredEvent] = []
        for key, raw in rows:
            decoded = self._decode(key, raw)
            if decoded is not None:
                events.append(decoded)
        return newest_first(events)

    def health(self) -> dict[str, Any]:
        """Backend diagnostics after a one-row test read."""
        self._backend.list_recent(limit=1)
        return self._backend.health()

    @staticmethod
    def _decode(key: str, raw: str) -> StoredEvent | None:
        try:
            return StoredEvent.model_validate_json(raw)
        except ValidationError:
            logger.warning("store.decode_failed key=%s", key)
            return None


def build_backend(kind: str, *, jsonl_path: Path) -> KeyValueBackend:
    if kind == "memory":
        return MemoryKVStore()
    if kind == "jsonl":
        return JsonlKVStore.from_jsonl(jsonl_path)
    raise StoreError(f"unknown store backend: {kind!r}")

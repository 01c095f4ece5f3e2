"""Composition layer: build and hold long-lived service objects for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass

from setup_hud.core.config import Settings
from setup_hud.hub.broadcast_hub import BroadcastHub
from setup_hud.infra.db.event_store import EventStoreClient, build_backend
from setup_hud.infra.db.kv_store import KeyValueBackend
from setup_hud.infra.security.access_token import AccessTokenVerifier
from setup_hud.ingest.pipeline import IngestionPipeline


@dataclass
class AppContainer:
    """Container object attached to FastAPI app state."""

    settings: Settings
    store: EventStoreClient
    hub: BroadcastHub
    ingestion: IngestionPipeline
    access_verifier: AccessTokenVerifier | None = None


def build_container(
    settings: Settings,
    *,
    backend: KeyValueBackend | None = None,
    access_verifier: AccessTokenVerifier | None = None,
) -> AppContainer:
    """Construct runtime dependencies in one place; the hub is created exactly once here."""
    if backend is None:
        backend = build_backend(settings.store_backend, jsonl_path=settings.store_jsonl_path)
    store = EventStoreClient(backend, ttl_seconds=settings.event_ttl_seconds)
    hub = BroadcastHub(
        store,
        room=settings.hub_room,
        history_limit=settings.hub_history_limit,
        max_message_bytes=settings.hub_max_message_bytes,
    )
    ingestion = IngestionPipeline(
        store=store,
        hub=hub,
        webhook_secret=settings.webhook_secret,
        max_body_bytes=settings.max_webhook_bytes,
    )
    if access_verifier is None and settings.access_gate_enabled:
        access_verifier = AccessTokenVerifier(
            audience=settings.access_aud,
            team_domain=settings.access_team_domain,
        )
    return AppContainer(
        settings=settings,
        store=store,
        hub=hub,
        ingestion=ingestion,
        access_verifier=access_verifier,
    )

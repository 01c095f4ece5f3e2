"""Lifecycle hooks for startup diagnostics and hub shutdown."""

from __future__ import annotations

from setup_hud.core.container import AppContainer
from setup_hud.infra.db.kv_store import StoreError
from setup_hud.infra.observability.logger import get_logger

logger = get_logger(__name__)


def on_startup(container: AppContainer) -> None:
    settings = container.settings
    try:
        logger.info("Event store ready: %s", container.store.health())
    except StoreError as exc:
        # Serve anyway; /api/health reports the degraded store.
        logger.error("Event store unavailable at startup: %s", exc)
    logger.info(
        "Hub room=%s history_limit=%s webhook_auth=%s access_gate=%s",
        container.hub.room,
        container.hub.history_limit,
        "on" if settings.webhook_secret else "off",
        "on" if container.access_verifier else "off",
    )


async def on_shutdown(container: AppContainer) -> None:
    await container.hub.close_all()
    logger.info("Setup Manager HUD shutdown complete.")

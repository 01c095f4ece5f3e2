"""HTTP API layer: health check for store reachability and hub session count."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from setup_hud.api.deps import get_container, require_viewer_access
from setup_hud.core.container import AppContainer
from setup_hud.infra.db.kv_store import StoreError
from setup_hud.infra.observability.logger import get_logger
from setup_hud.protocol.messages import HealthStatus, utc_now_ms

router = APIRouter(prefix="/api", tags=["health"], dependencies=[Depends(require_viewer_access)])
logger = get_logger(__name__)


@router.get("/health")
def health(container: AppContainer = Depends(get_container)) -> JSONResponse:
    status = "healthy"
    store_state = "connected"
    try:
        container.store.health()
    except StoreError as exc:
        logger.error("health.store_failed error=%s", exc)
        store_state = "error"
        status = "degraded"

    report = HealthStatus(
        status=status,
        timestamp=utc_now_ms(),
        store=store_state,
        hub="connected",
        room=container.hub.room,
        connections=container.hub.connection_count(),
    )
    return JSONResponse(
        status_code=200 if status == "healthy" else 503,
        content=report.model_dump(),
    )

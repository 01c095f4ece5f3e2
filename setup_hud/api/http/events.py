"""HTTP API layer: recent-events listing and server-side stats for viewers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from setup_hud.api.deps import get_container, require_viewer_access
from setup_hud.core.container import AppContainer
from setup_hud.infra.db.kv_store import StoreError
from setup_hud.infra.observability.logger import get_logger
from setup_hud.protocol.messages import ErrorBody
from setup_hud.stats.aggregator import compute_stats

router = APIRouter(prefix="/api", tags=["events"], dependencies=[Depends(require_viewer_access)])
logger = get_logger(__name__)

DEFAULT_EVENTS_LIMIT = 100
MAX_EVENTS_LIMIT = 1000


def parse_events_limit(raw: str | None) -> int:
    """Lenient integer parse clamped to [1, 1000]; unparseable input means the default."""
    if raw is None:
        return DEFAULT_EVENTS_LIMIT
    try:
        value = int(raw.strip())
    except ValueError:
        return DEFAULT_EVENTS_LIMIT
    return min(max(value, 1), MAX_EVENTS_LIMIT)


def _store_unavailable(exc: StoreError) -> JSONResponse:
    logger.error("api.store_failed error=%s", exc)
    return JSONResponse(status_code=503, content=ErrorBody(error="Event store unavailable").model_dump())


@router.get("/events")
def list_events(
    limit: str | None = Query(default=None),
    container: AppContainer = Depends(get_container),
) -> JSONResponse:
    try:
        events = container.store.recent(parse_events_limit(limit))
    except StoreError as exc:
        return _store_unavailable(exc)
    return JSONResponse(content=[item.to_wire() for item in events])


@router.get("/stats")
def stats(container: AppContainer = Depends(get_container)) -> JSONResponse:
    try:
        window = container.store.recent(container.settings.stats_window)
    except StoreError as exc:
        return _store_unavailable(exc)
    return JSONResponse(content=compute_stats(window).model_dump())

"""HTTP API layer: webhook ingestion endpoint for provisioning agents."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from setup_hud.api.deps import get_container
from setup_hud.core.container import AppContainer
from setup_hud.infra.observability.logger import get_logger
from setup_hud.ingest.pipeline import IngestionError
from setup_hud.protocol.messages import ErrorBody, WebhookAccepted

router = APIRouter(tags=["webhook"])
logger = get_logger(__name__)


async def _read_capped(request: Request, limit: int) -> bytes:
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise IngestionError(413, "Payload too large", reason="streamed body over limit")
    return bytes(body)


@router.post("/webhook", response_model=WebhookAccepted)
async def receive_webhook(
    request: Request,
    container: AppContainer = Depends(get_container),
) -> JSONResponse:
    pipeline = container.ingestion
    client_ip = request.client.host if request.client else "-"
    try:
        pipeline.check_preconditions(
            content_length=request.headers.get("content-length"),
            content_type=request.headers.get("content-type"),
            authorization=request.headers.get("authorization"),
        )
        body = await _read_capped(request, pipeline.max_body_bytes)
        stored = await pipeline.ingest(body)
    except IngestionError as exc:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("webhook.rejected status=%s client=%s reason=%s", exc.status_code, client_ip, exc.reason)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorBody(error=exc.public_message).model_dump(),
        )
    return JSONResponse(content=WebhookAccepted(eventId=stored.eventId).model_dump())

"""Stream API layer: WebSocket upgrade endpoint feeding viewer sessions into the hub."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from setup_hud.api.deps import check_viewer_access
from setup_hud.core.container import AppContainer
from setup_hud.hub.broadcast_hub import NORMAL_CLOSURE
from setup_hud.infra.observability.logger import get_logger

router = APIRouter(tags=["stream"])
logger = get_logger(__name__)


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket) -> None:
    container: AppContainer = websocket.app.state.container
    # JWKS lookups may hit the network; keep them off the hub's loop.
    if await run_in_threadpool(check_viewer_access, websocket, container) is not None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = container.hub
    session = await hub.join(websocket)
    code = NORMAL_CLOSURE
    peer_closed = False
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                code = message.get("code") or NORMAL_CLOSURE
                peer_closed = True
                break
            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes")
            if payload is None:
                continue
            await hub.handle_client_message(session, payload)
    except WebSocketDisconnect as exc:
        code = exc.code
        peer_closed = True
    except Exception:
        logger.exception("ws.session_failed session=%s", session.session_id)
        code = status.WS_1011_INTERNAL_ERROR
    finally:
        await hub.disconnect(session, code, close_transport=not peer_closed)

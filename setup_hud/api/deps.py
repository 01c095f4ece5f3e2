"""API layer: dependency helpers to access the shared container and gate viewer routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection

from setup_hud.core.container import AppContainer
from setup_hud.infra.observability.logger import get_logger
from setup_hud.infra.security.access_token import ACCESS_HEADER, AccessDenied

logger = get_logger(__name__)


def get_container(connection: HTTPConnection) -> AppContainer:
    return connection.app.state.container  # type: ignore[return-value]


def check_viewer_access(connection: HTTPConnection, container: AppContainer) -> str | None:
    """Return a denial reason, or None when the gate is off or the assertion is valid."""
    verifier = container.access_verifier
    if verifier is None:
        return None
    try:
        verifier.verify(connection.headers.get(ACCESS_HEADER))
    except AccessDenied as exc:
        logger.warning("access.denied path=%s reason=%s", connection.url.path, exc)
        return str(exc)
    return None


def require_viewer_access(
    connection: HTTPConnection,
    container: AppContainer = Depends(get_container),
) -> None:
    reason = check_viewer_access(connection, container)
    if reason is not None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Unauthorized: {reason}")

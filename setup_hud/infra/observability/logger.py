"""Observability layer: one console format for the API server, hub, viewer and tools."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error")
# Frame-level chatter; only surfaced when DEBUG is requested.
_NOISY_LOGGERS = ("websockets", "httpx", "httpcore")


def setup_logging(level: str = "INFO") -> None:
    """Route every logger to a single root handler at ``level``."""
    normalized = level.upper()
    logging.basicConfig(level=normalized, format=LOG_FORMAT, force=True)
    for name in _SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.setLevel(normalized)
        server_logger.propagate = True
    noisy_level = logging.DEBUG if normalized == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

"""Viewer layer: asyncio driver for the dashboard session protocol over ``websockets``.

Usage:
    python -m setup_hud.viewer.client ws://localhost:8787/ws
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Awaitable, Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from setup_hud.infra.observability.logger import get_logger, setup_logging
from setup_hud.infra.security.access_token import ACCESS_HEADER
from setup_hud.viewer.state import (
    PING_INTERVAL_SECONDS,
    ReconnectStateMachine,
    ViewerEventLog,
    history_request,
    ping_request,
)

logger = get_logger(__name__)

UpdateHandler = Callable[[str, ViewerEventLog], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[None]]


class ViewerClient:
    """Keeps a local event log in sync with the hub and reconnects with backoff."""

    def __init__(
        self,
        url: str,
        *,
        access_token: str | None = None,
        on_update: UpdateHandler | None = None,
        ping_interval: float = PING_INTERVAL_SECONDS,
        sleep: Sleeper = asyncio.sleep,
        machine: ReconnectStateMachine | None = None,
    ) -> None:
        self._url = url
        self._headers = {ACCESS_HEADER: access_token} if access_token else None
        self._on_update = on_update
        self._ping_interval = ping_interval
        self._sleep = sleep
        self.machine = machine or ReconnectStateMachine()
        self.log = ViewerEventLog()
        self._stopping = False

    @property
    def connected(self) -> bool:
        return self.machine.connected

    def stop(self) -> None:
        self._stopping = True

    async def run(self) -> None:
        """Connect, stream, and reconnect until stopped or abandoned."""
        self.machine.start()
        while not self._stopping:
            try:
                async with connect(self._url, additional_headers=self._headers, ping_interval=None) as ws:
                    self.machine.on_open()
                    logger.info("viewer.open url=%s", self._url)
                    await self._stream(ws)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("viewer.connection_lost url=%s error=%s", self._url, exc)

            if self._stopping:
                break
            delay = self.machine.on_close()
            if delay is None:
                logger.error(
                    "viewer.abandoned url=%s attempts=%s; reload required",
                    self._url,
                    self.machine.attempt,
                )
                return
            logger.info("viewer.reconnect attempt=%s delay=%.0fs", self.machine.attempt, delay)
            await self._sleep(delay)
            self.machine.on_retry()

    async def _stream(self, ws: ClientConnection) -> None:
        await ws.send(history_request())
        keepalive = asyncio.create_task(self._keepalive(ws))
        try:
            async for raw in ws:
                kind = self.log.apply(raw)
                if kind and self._on_update is not None:
                    await self._on_update(kind, self.log)
                if self._stopping:
                    await ws.close()
        finally:
            keepalive.cancel()

    async def _keepalive(self, ws: ClientConnection) -> None:
        while True:
            await asyncio.sleep(self._ping_interval)
            try:
                await ws.send(ping_request())
            except ConnectionClosed:
                return


async def _print_update(kind: str, log: ViewerEventLog) -> None:
    if kind not in ("history", "setup-manager-event"):
        return
    stats = log.stats()
    logger.info(
        "viewer.update type=%s events=%s started=%s finished=%s success_rate=%s%% failed_actions=%s",
        kind,
        stats.total,
        stats.started,
        stats.finished,
        stats.successRate,
        stats.failedActions,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Tail the Setup Manager HUD live feed.")
    parser.add_argument("url", help="WebSocket URL, e.g. ws://localhost:8787/ws")
    parser.add_argument("--access-token", default=None, help="Edge gate assertion to forward.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logging(args.log_level)
    client = ViewerClient(args.url, access_token=args.access_token, on_update=_print_update)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        client.stop()


if __name__ == "__main__":
    main()

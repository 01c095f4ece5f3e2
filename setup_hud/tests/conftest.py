"""Test fixtures shared by unit/integration tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

from setup_hud.core.config import Settings
from setup_hud.core.container import build_container
from setup_hud.infra.db.kv_store import KeyValueBackend, MemoryKVStore
from setup_hud.infra.security.access_token import AccessTokenVerifier


class FakeTransport:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.fail_sends = fail_sends
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_code = code

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == kind]


@pytest.fixture
def transport_factory() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def started_payload() -> dict[str, Any]:
    return {
        "name": "Started",
        "event": "com.jamf.setupmanager.started",
        "timestamp": "2026-02-20T10:00:00.000Z",
        "started": "2026-02-20T10:00:00.000Z",
        "modelName": "MacBook Air",
        "modelIdentifier": "Mac14,2",
        "macOSBuild": "24C101",
        "macOSVersion": "15.2.0",
        "serialNumber": "TEST001",
        "setupManagerVersion": "1.2",
        "jamfProVersion": "11.12.0",
    }


@pytest.fixture
def finished_payload(started_payload: dict[str, Any]) -> dict[str, Any]:
    payload = dict(started_payload)
    payload.update(
        {
            "name": "Finished",
            "event": "com.jamf.setupmanager.finished",
            "timestamp": "2026-02-20T10:12:30.000Z",
            "finished": "2026-02-20T10:12:30.000Z",
            "duration": 750,
            "computerName": "Mac-T001",
            "userEntry": {"department": "IT", "userID": "jdoe"},
            "enrollmentActions": [
                {"label": "A", "status": "finished"},
                {"label": "B", "status": "failed"},
            ],
            "uploadThroughput": 12_000_000,
            "downloadThroughput": 90_000_000,
        }
    )
    return payload


@pytest.fixture
def app_factory() -> Callable[..., TestClient]:
    """Build a TestClient over a fresh app; the memory backend is returned for inspection."""

    def _build(
        *,
        backend: KeyValueBackend | None = None,
        access_verifier: AccessTokenVerifier | None = None,
        **overrides: Any,
    ) -> tuple[TestClient, KeyValueBackend]:
        from setup_hud.main import create_app

        settings = Settings(log_level="WARNING", **overrides)
        kv_backend = backend if backend is not None else MemoryKVStore()
        container = build_container(settings, backend=kv_backend, access_verifier=access_verifier)
        return TestClient(create_app(settings, container=container)), kv_backend

    return _build

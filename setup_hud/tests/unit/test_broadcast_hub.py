"""Unit tests for the broadcast hub: join/leave, fan-out, client messages."""

from __future__ import annotations

import json
import math

import pytest

from setup_hud.hub.broadcast_hub import GOING_AWAY, BroadcastHub, clamp_history_limit
from setup_hud.infra.db.event_store import EventStoreClient
from setup_hud.infra.db.kv_store import MemoryKVStore, StoreError
from setup_hud.protocol.messages import SETUP_MANAGER_EVENT_ADAPTER, StoredEvent


class BrokenBackend(MemoryKVStore):
    def list_recent(self, *, limit: int) -> list[tuple[str, str]]:
        raise StoreError("backend unreachable")


def _stored(payload: dict, received_ms: int) -> StoredEvent:
    return StoredEvent.create(SETUP_MANAGER_EVENT_ADAPTER.validate_python(payload), received_ms)


def _hub(backend=None, **kwargs) -> tuple[BroadcastHub, EventStoreClient]:
    store = EventStoreClient(backend if backend is not None else MemoryKVStore(), ttl_seconds=60)
    return BroadcastHub(store, **kwargs), store


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (50, 50),
        (0, 1),
        (-3, 1),
        (10_000, 200),
        (12.9, 12),
        (math.inf, 200),
        (-math.inf, 1),
        ("50", 200),
        (None, 200),
        (True, 200),
    ],
)
def test_clamp_history_limit(raw, expected) -> None:
    assert clamp_history_limit(raw, maximum=200) == expected


@pytest.mark.asyncio
async def test_join_acknowledges_then_replays_history(started_payload, transport_factory, wait_until) -> None:
    hub, store = _hub()
    store.append(_stored(started_payload, 1_000))
    transport = transport_factory()

    session = await hub.join(transport)
    await wait_until(lambda: transport.of_type("history"))

    assert transport.accepted
    assert session.is_open
    assert hub.connection_count() == 1
    assert transport.sent[0]["type"] == "connected"
    assert transport.sent[0]["message"] == "Connected to Setup Manager dashboard"
    history = transport.of_type("history")[0]
    assert [item["timestamp"] for item in history["data"]] == [1_000]


@pytest.mark.asyncio
async def test_broadcast_reaches_every_open_session(started_payload, transport_factory, wait_until) -> None:
    hub, _ = _hub()
    first, second = transport_factory(), transport_factory()
    await hub.join(first)
    await hub.join(second)
    await wait_until(lambda: first.of_type("history") and second.of_type("history"))

    outcome = await hub.broadcast(_stored(started_payload, 5_000))

    assert (outcome.attempted, outcome.succeeded, outcome.failed) == (2, 2, 0)
    for transport in (first, second):
        live = transport.of_type("setup-manager-event")
        assert live[0]["data"]["eventId"] == "com.jamf.setupmanager.started:TEST001:5000"


@pytest.mark.asyncio
async def test_broadcast_isolates_failing_session(started_payload, transport_factory, wait_until) -> None:
    hub, _ = _hub()
    healthy = transport_factory()
    await hub.join(healthy)
    await wait_until(lambda: healthy.of_type("history"))
    flaky = transport_factory()
    await hub.join(flaky)
    flaky.fail_sends = True

    outcome = await hub.broadcast(_stored(started_payload, 5_000))

    assert (outcome.attempted, outcome.succeeded, outcome.failed) == (2, 1, 1)
    assert len(healthy.of_type("setup-manager-event")) == 1


@pytest.mark.asyncio
async def test_broadcast_with_no_viewers(started_payload) -> None:
    hub, _ = _hub()
    outcome = await hub.broadcast(_stored(started_payload, 1))
    assert (outcome.attempted, outcome.succeeded, outcome.failed) == (0, 0, 0)


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(transport_factory) -> None:
    hub, _ = _hub()
    transport = transport_factory()
    session = await hub.join(transport)

    await hub.disconnect(session, 1000)
    await hub.disconnect(session, 1000)

    assert session.is_closed
    assert hub.connection_count() == 0
    assert transport.closed_code == 1000


@pytest.mark.asyncio
async def test_ping_gets_pong(transport_factory) -> None:
    hub, _ = _hub()
    transport = transport_factory()
    session = await hub.join(transport)

    await hub.handle_client_message(session, json.dumps({"type": "ping"}))

    pong = transport.of_type("pong")
    assert len(pong) == 1
    assert isinstance(pong[0]["timestamp"], int)


@pytest.mark.asyncio
async def test_request_history_is_clamped(started_payload, transport_factory, wait_until) -> None:
    hub, store = _hub(history_limit=2)
    for ms in (1_000, 2_000, 3_000):
        store.append(_stored(dict(started_payload, serialNumber=f"S{ms}"), ms))
    transport = transport_factory()
    session = await hub.join(transport)
    await wait_until(lambda: transport.of_type("history"))

    await hub.handle_client_message(session, json.dumps({"type": "request-history", "limit": 500}))

    replies = transport.of_type("history")
    assert len(replies) == 2
    assert [item["timestamp"] for item in replies[-1]["data"]] == [3_000, 2_000]


@pytest.mark.asyncio
async def test_oversized_and_malformed_messages(transport_factory, wait_until) -> None:
    hub, _ = _hub(max_message_bytes=64)
    transport = transport_factory()
    session = await hub.join(transport)
    await wait_until(lambda: transport.of_type("history"))
    before = len(transport.sent)

    await hub.handle_client_message(session, "x" * 65)
    await hub.handle_client_message(session, "{broken")
    await hub.handle_client_message(session, "[1, 2]")
    await hub.handle_client_message(session, json.dumps({"type": "subscribe"}))

    errors = transport.of_type("error")
    assert [item["message"] for item in errors] == ["Message too large"]
    assert len(transport.sent) == before + 1
    assert session.is_open


@pytest.mark.asyncio
async def test_history_failure_reports_error(transport_factory, wait_until) -> None:
    hub, _ = _hub(backend=BrokenBackend())
    transport = transport_factory()
    await hub.join(transport)

    await wait_until(lambda: transport.of_type("error"))

    assert transport.of_type("error")[0]["message"] == "History unavailable"
    assert hub.connection_count() == 1


@pytest.mark.asyncio
async def test_failed_acknowledgement_leaves_no_session(transport_factory) -> None:
    hub, _ = _hub()
    transport = transport_factory(fail_sends=True)

    with pytest.raises(RuntimeError):
        await hub.join(transport)

    assert hub.connection_count() == 0


@pytest.mark.asyncio
async def test_close_all_uses_going_away(transport_factory) -> None:
    hub, _ = _hub()
    transports = [transport_factory(), transport_factory()]
    for transport in transports:
        await hub.join(transport)

    await hub.close_all()

    assert hub.connection_count() == 0
    assert [transport.closed_code for transport in transports] == [GOING_AWAY, GOING_AWAY]


@pytest.mark.asyncio
async def test_every_session_sees_every_event_in_order(started_payload, transport_factory, wait_until) -> None:
    hub, _ = _hub()
    viewers = [transport_factory() for _ in range(3)]
    for viewer in viewers:
        await hub.join(viewer)
    await wait_until(lambda: all(viewer.of_type("history") for viewer in viewers))

    events = [_stored(dict(started_payload, serialNumber=f"S{index}"), 1_000 + index) for index in range(5)]
    for event in events:
        await hub.broadcast(event)

    expected = [event.eventId for event in events]
    for viewer in viewers:
        assert [item["data"]["eventId"] for item in viewer.of_type("setup-manager-event")] == expected

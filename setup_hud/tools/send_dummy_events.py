"""Tools: POST synthetic Started/Finished webhook pairs to a running HUD.

Usage:
    WEBHOOK_URL=http://localhost:8787/webhook python -m setup_hud.tools.send_dummy_events
    WEBHOOK_SECRET=... adds the bearer token when the server requires one.

Devices get random Mac models and macOS versions; runs are spread over the last
three days and roughly 5% of enrollment actions are marked failed.
"""

from __future__ import annotations

import argparse
import json
import os
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib import error, request

from setup_hud.infra.observability.logger import get_logger, setup_logging
from setup_hud.protocol.messages import FINISHED_EVENT, STARTED_EVENT

logger = get_logger(__name__)

MODELS = (
    ("MacBook Air", "Mac14,2"),
    ("MacBook Pro", "Mac15,7"),
    ("iMac", "iMac24,1"),
    ("Mac mini", "Mac14,3"),
    ("Mac Studio", "Mac14,13"),
)
MACOS = (("15.2.0", "24C101"), ("15.1.1", "24B91"), ("15.0.1", "24A348"))
ACTION_LABELS = ("Dropbox", "Jamf Protect", "Microsoft Defender", "ChatGPT")
SETUP_MANAGER_VERSION = "1.2"


@dataclass(frozen=True)
class DummyDevice:
    serial_number: str
    model_name: str
    model_identifier: str
    macos_version: str
    macos_build: str
    jamf_pro_version: str


def make_devices(count: int, rng: random.Random) -> list[DummyDevice]:
    devices = []
    for index in range(count):
        model_name, model_identifier = rng.choice(MODELS)
        version, build = rng.choice(MACOS)
        devices.append(
            DummyDevice(
                serial_number=f"DUMMY{index + 1:06d}",
                model_name=model_name,
                model_identifier=model_identifier,
                macos_version=version,
                macos_build=build,
                jamf_pro_version=rng.choice(("11.12.0", "11.13.1")),
            )
        )
    return devices


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def started_payload(device: DummyDevice, started_at: datetime) -> dict[str, Any]:
    stamp = _iso(started_at)
    return {
        "name": "Started",
        "event": STARTED_EVENT,
        "timestamp": stamp,
        "started": stamp,
        "modelName": device.model_name,
        "modelIdentifier": device.model_identifier,
        "macOSBuild": device.macos_build,
        "macOSVersion": device.macos_version,
        "serialNumber": device.serial_number,
        "setupManagerVersion": SETUP_MANAGER_VERSION,
        "jamfProVersion": device.jamf_pro_version,
    }


def finished_payload(
    device: DummyDevice,
    started_at: datetime,
    duration_seconds: int,
    rng: random.Random,
) -> dict[str, Any]:
    finished_at = started_at + timedelta(seconds=duration_seconds)
    payload = started_payload(device, started_at)
    payload.update(
        {
            "name": "Finished",
            "event": FINISHED_EVENT,
            "timestamp": _iso(finished_at),
            "finished": _iso(finished_at),
            "duration": duration_seconds,
            "computerName": f"Mac-{device.serial_number[-4:]}",
            "enrollmentActions": [
                {"label": label, "status": "failed" if rng.random() < 0.05 else "finished"}
                for label in ACTION_LABELS
            ],
            # bits per second: upload 2-50 Mbps, download 5-150 Mbps
            "uploadThroughput": int((2 + rng.random() * 48) * 1_000_000),
            "downloadThroughput": int((5 + rng.random() * 145) * 1_000_000),
        }
    )
    return payload


def send_payload(url: str, payload: dict[str, Any], *, secret: str = "", timeout: float = 10.0) -> bool:
    headers = {"Content-Type": "application/json"}
    if secret:
        headers["Authorization"] = f"Bearer {secret}"
    req = request.Request(url, data=json.dumps(payload).encode("utf-8"), headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            body = json.loads(resp.read().decode("utf-8", errors="replace"))
    except error.HTTPError as exc:
        logger.warning("dummy.rejected status=%s serial=%s", exc.code, payload.get("serialNumber"))
        return False
    except (error.URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning("dummy.failed serial=%s error=%s", payload.get("serialNumber"), exc)
        return False
    logger.debug("dummy.sent event_id=%s", body.get("eventId"))
    return True


def build_runs(
    devices: list[DummyDevice],
    runs_per_device: int,
    rng: random.Random,
    *,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Started/finished payload pairs, oldest first, spread over the last three days."""
    now = now or datetime.now(timezone.utc)
    window_minutes = 3 * 24 * 60
    runs: list[tuple[datetime, dict[str, Any]]] = []
    for device in devices:
        for _ in range(runs_per_device):
            started_at = now - timedelta(minutes=rng.randint(30, window_minutes))
            duration = rng.randint(120, 1800)
            runs.append((started_at, started_payload(device, started_at)))
            runs.append(
                (
                    started_at + timedelta(seconds=duration),
                    finished_payload(device, started_at, duration, rng),
                )
            )
    runs.sort(key=lambda item: item[0])
    return [payload for _, payload in runs]


def main() -> None:
    parser = argparse.ArgumentParser(description="Send dummy Setup Manager webhooks.")
    parser.add_argument("--url", default=os.getenv("WEBHOOK_URL", "http://localhost:8787/webhook"))
    parser.add_argument("--devices", type=int, default=10)
    parser.add_argument("--runs", type=int, default=7, help="Started/finished pairs per device.")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logging(args.log_level)
    rng = random.Random(args.seed)
    secret = os.getenv("WEBHOOK_SECRET", "")
    payloads = build_runs(make_devices(args.devices, rng), args.runs, rng)

    sent = sum(1 for payload in payloads if send_payload(args.url, payload, secret=secret))
    logger.info("dummy.done sent=%s failed=%s url=%s", sent, len(payloads) - sent, args.url)


if __name__ == "__main__":
    main()

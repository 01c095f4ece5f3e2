"""Configuration layer: load runtime settings from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

NINETY_DAYS_SECONDS = 60 * 60 * 24 * 90


def _resolve_path(path_like: str) -> Path:
    candidate = Path(path_like)
    if candidate.is_absolute():
        return candidate
    if candidate.exists():
        return candidate
    project_root = Path(__file__).resolve().parents[2]
    rooted = project_root / candidate
    if rooted.exists():
        return rooted
    return candidate


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    """Immutable application settings used across API/hub layers."""

    app_name: str = "Setup Manager HUD"
    app_version: str = "0.1.0"
    env: str = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8787
    cors_allow_origins: str = ""
    webhook_secret: str = ""
    max_webhook_bytes: int = 8192
    event_ttl_seconds: int = NINETY_DAYS_SECONDS
    store_backend: str = "memory"
    store_jsonl_path: Path = Path("data/events.jsonl")
    hub_room: str = "main"
    hub_history_limit: int = 200
    hub_max_message_bytes: int = 4096
    stats_window: int = 1000
    access_aud: str = ""
    access_team_domain: str = ""

    @property
    def access_gate_enabled(self) -> bool:
        return bool(self.access_aud and self.access_team_domain)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from process env with deterministic defaults."""
        return cls(
            app_name=os.getenv("APP_NAME", cls.app_name),
            app_version=os.getenv("APP_VERSION", cls.app_version),
            env=os.getenv("APP_ENV", cls.env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
            cors_allow_origins=os.getenv("CORS_ALLOW_ORIGINS", cls.cors_allow_origins),
            webhook_secret=_env_str("WEBHOOK_SECRET", cls.webhook_secret),
            max_webhook_bytes=int(
                os.getenv("MAX_WEBHOOK_BYTES", str(cls.max_webhook_bytes))
            ),
            event_ttl_seconds=int(
                os.getenv("EVENT_TTL_SECONDS", str(cls.event_ttl_seconds))
            ),
            store_backend=_env_str("STORE_BACKEND", cls.store_backend).lower(),
            store_jsonl_path=_resolve_path(
                os.getenv("STORE_JSONL_PATH", str(cls.store_jsonl_path))
            ),
            hub_room=os.getenv("HUB_ROOM", cls.hub_room),
            hub_history_limit=int(
                os.getenv("HUB_HISTORY_LIMIT", str(cls.hub_history_limit))
            ),
            hub_max_message_bytes=int(
                os.getenv("HUB_MAX_MESSAGE_BYTES", str(cls.hub_max_message_bytes))
            ),
            stats_window=int(os.getenv("STATS_WINDOW", str(cls.stats_window))),
            access_aud=_env_str("ACCESS_AUD", cls.access_aud),
            access_team_domain=_env_str("ACCESS_TEAM_DOMAIN", cls.access_team_domain),
        )

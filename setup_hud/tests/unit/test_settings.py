"""Unit tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

from setup_hud.core.config import NINETY_DAYS_SECONDS, Settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.port == 8787
    assert settings.max_webhook_bytes == 8192
    assert settings.event_ttl_seconds == NINETY_DAYS_SECONDS
    assert settings.hub_history_limit == 200
    assert settings.hub_max_message_bytes == 4096
    assert not settings.access_gate_enabled


def test_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("WEBHOOK_SECRET", "  s3cret  ")
    monkeypatch.setenv("STORE_BACKEND", "JSONL")
    monkeypatch.setenv("STORE_JSONL_PATH", str(tmp_path / "events.jsonl"))
    monkeypatch.setenv("HUB_HISTORY_LIMIT", "50")
    monkeypatch.setenv("ACCESS_AUD", "aud-tag")
    monkeypatch.setenv("ACCESS_TEAM_DOMAIN", "team.example.com")

    settings = Settings.from_env()

    assert settings.port == 9000
    assert settings.webhook_secret == "s3cret"
    assert settings.store_backend == "jsonl"
    assert settings.store_jsonl_path == tmp_path / "events.jsonl"
    assert settings.hub_history_limit == 50
    assert settings.access_gate_enabled


def test_gate_needs_both_values(monkeypatch) -> None:
    monkeypatch.setenv("ACCESS_AUD", "aud-tag")
    monkeypatch.delenv("ACCESS_TEAM_DOMAIN", raising=False)
    assert not Settings.from_env().access_gate_enabled

"""Data layer: TTL key-value backends (in-memory and JSONL append log) for stored events."""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Protocol

from setup_hud.infra.observability.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


class StoreError(RuntimeError):
    """Raised when the durable backend cannot complete a read or write."""


class KeyValueBackend(Protocol):
    """Append-style KV contract: put with TTL, point get, bounded newest-first listing."""

    def put(self, key: str, value: str, *, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def list_recent(self, *, limit: int) -> list[tuple[str, str]]: ...

    def health(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class LoadStats:
    """Diagnostics collected while replaying the JSONL log."""

    total_lines: int
    loaded_rows: int
    expired_rows: int
    bad_lines: int


@dataclass(frozen=True)
class _Entry:
    value: str
    expires_at: float


class MemoryKVStore:
    """Thread-safe in-process KV store with per-key expiry, ordered by write time."""

    backend_name = "memory"

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked(self._clock())
            return len(self._entries)

    def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise StoreError("ttl_seconds must be positive")
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._write_locked(key, value, expires_at)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def list_recent(self, *, limit: int) -> list[tuple[str, str]]:
        """Return up to ``limit`` live entries, most recently written first."""
        safe_limit = max(1, limit)
        with self._lock:
            self._purge_locked(self._clock())
            rows: list[tuple[str, str]] = []
            for key in reversed(self._entries):
                rows.append((key, self._entries[key].value))
                if len(rows) >= safe_limit:
                    break
            return rows

    def health(self) -> dict[str, Any]:
        return {"backend": self.backend_name, "entries": len(self)}

    def _write_locked(self, key: str, value: str, expires_at: float) -> None:
        self._entries[key] = _Entry(value=value, expires_at=expires_at)
        self._entries.move_to_end(key)

    def _purge_locked(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]


class JsonlKVStore(MemoryKVStore):
    """Memory store mirrored to an append-only JSONL file and rebuilt from it on start."""

    backend_name = "jsonl"

    def __init__(self, path: Path, clock: Clock = time.time) -> None:
        super().__init__(clock=clock)
        self._path = path
        self.load_stats = LoadStats(total_lines=0, loaded_rows=0, expired_rows=0, bad_lines=0)

    @classmethod
    def from_jsonl(cls, path: Path, clock: Clock = time.time) -> "JsonlKVStore":
        store = cls(path, clock=clock)
        store._replay()
        return store

    def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise StoreError("ttl_seconds must be positive")
        expires_at = self._clock() + ttl_seconds
        line = json.dumps({"key": key, "value": value, "expires_at": expires_at}, ensure_ascii=False)
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
                    handle.write("\n")
            except OSError as exc:
                raise StoreError(f"failed to append to {self._path}: {exc}") from exc
            self._write_locked(key, value, expires_at)

    def health(self) -> dict[str, Any]:
        """Check that the log can still be opened for append; raise StoreError otherwise."""
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8"):
                    pass
            except OSError as exc:
                raise StoreError(f"event log {self._path} is not writable: {exc}") from exc
        stats = super().health()
        stats["path"] = str(self._path)
        stats["bad_lines"] = self.load_stats.bad_lines
        return stats

    def _replay(self) -> None:
        if not self._path.exists():
            return
        now = self._clock()
        total = 0
        loaded = 0
        expired = 0
        bad_lines = 0
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    total += 1
                    raw_line = line.strip()
                    if not raw_line:
                        bad_lines += 1
                        continue
                    try:
                        row = json.loads(raw_line)
                        key = str(row["key"])
                        value = str(row["value"])
                        expires_at = float(row["expires_at"])
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                        bad_lines += 1
                        continue
                    if expires_at <= now:
                        expired += 1
                        continue
                    self._write_locked(key, value, expires_at)
                    loaded += 1
        except OSError as exc:
            raise StoreError(f"failed to read {self._path}: {exc}") from exc

        self.load_stats = LoadStats(
            total_lines=total,
            loaded_rows=loaded,
            expired_rows=expired,
            bad_lines=bad_lines,
        )
        if expired or bad_lines:
            self._compact()

    def _compact(self) -> None:
        """Rewrite the log with live entries only."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with self._lock:
            try:
                with tmp_path.open("w", encoding="utf-8") as handle:
                    for key, entry in self._entries.items():
                        row = {"key": key, "value": entry.value, "expires_at": entry.expires_at}
                        handle.write(json.dumps(row, ensure_ascii=False))
                        handle.write("\n")
                tmp_path.replace(self._path)
            except OSError as exc:
                raise StoreError(f"failed to compact {self._path}: {exc}") from exc
        logger.info(
            "store.compacted path=%s live=%s dropped=%s",
            self._path,
            len(self._entries),
            self.load_stats.expired_rows + self.load_stats.bad_lines,
        )

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from lpdash.errors import CacheFailure

logger = logging.getLogger(__name__)

UTC = timezone.utc
DEFAULT_RETENTION = timedelta(hours=12)
DEFAULT_TIMEOUT = 3.0


def _now() -> datetime:
    return datetime.now(UTC)


class ReportCache:
    """Key -> JSON blob store backed by SQLite.

    Entries older than ``retention`` are misses. Every failure (locked database,
    unwritable path, corrupt payload) is logged and degrades to a miss / no-op.
    """

    def __init__(self, path: str | Path, *, retention: timedelta = DEFAULT_RETENTION, timeout: float = DEFAULT_TIMEOUT):
        self.path = Path(path)
        self.retention = retention
        self.timeout = timeout
        self._lock = threading.Lock()
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        try:
            if not self._ready:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=self.timeout)
            conn.execute(f"PRAGMA busy_timeout = {int(self.timeout * 1000)}")
            if not self._ready:
                with conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS api_cache (
                          key TEXT PRIMARY KEY,
                          value TEXT NOT NULL,
                          stored_at TEXT NOT NULL
                        )
                        """
                    )
                self._ready = True
            return conn
        except (sqlite3.Error, OSError) as exc:
            raise CacheFailure(f"cache unavailable at {self.path}: {exc}") from exc

    def get(self, key: str) -> Optional[Any]:
        try:
            with self._lock:
                conn = self._connect()
                try:
                    row = conn.execute("SELECT value, stored_at FROM api_cache WHERE key = ?", (key,)).fetchone()
                finally:
                    conn.close()
            if row is None:
                return None
            stored_at = datetime.fromisoformat(row[1])
            if _now() - stored_at > self.retention:
                logger.info("Cache entry %s is stale (stored %s)", key, row[1])
                return None
            return json.loads(row[0])
        except (CacheFailure, sqlite3.Error, ValueError) as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, ensure_ascii=False)
            with self._lock:
                conn = self._connect()
                try:
                    with conn:
                        conn.execute(
                            "INSERT OR REPLACE INTO api_cache (key, value, stored_at) VALUES (?, ?, ?)",
                            (key, payload, _now().isoformat()),
                        )
                finally:
                    conn.close()
        except (CacheFailure, sqlite3.Error, TypeError, ValueError) as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)

    def clear(self) -> None:
        try:
            with self._lock:
                conn = self._connect()
                try:
                    with conn:
                        conn.execute("DELETE FROM api_cache")
                finally:
                    conn.close()
        except (CacheFailure, sqlite3.Error) as exc:
            logger.warning("Cache clear failed: %s", exc)

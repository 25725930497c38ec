from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any


class JsonCache:
    """
    SQLite-backed cache of decoded JSON API responses with a TTL.

    Keys are full request URLs (including sorted query parameters), so one
    cache directory can be shared by every client.
    """

    def __init__(self, cache_dir: Path, ttl_seconds: int = 86400):
        self.cache_dir = cache_dir
        self.ttl_seconds = ttl_seconds
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / "responses.sqlite"
        self._init_db()

    def _init_db(self) -> None:
        """Initialize SQLite database schema."""
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS response (
                key TEXT PRIMARY KEY,
                body TEXT NOT NULL,
                cached_at REAL NOT NULL,
                expires_at REAL NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_response_expires ON response(expires_at)")
        conn.commit()
        conn.close()

    def get(self, key: str) -> Any | None:
        """Return the cached payload for key, or None if absent or expired."""
        conn = sqlite3.connect(self.db_path)
        row = conn.execute(
            "SELECT body FROM response WHERE key = ? AND expires_at > ?",
            (key, time.time()),
        ).fetchone()
        conn.close()

        if not row:
            return None
        return json.loads(row[0])

    def put(self, key: str, payload: Any, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable payload, optionally with its own TTL."""
        cached_at = time.time()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds

        conn = sqlite3.connect(self.db_path)
        conn.execute(
            """
            INSERT OR REPLACE INTO response (key, body, cached_at, expires_at)
            VALUES (?, ?, ?, ?)
            """,
            (key, json.dumps(payload), cached_at, cached_at + ttl),
        )
        conn.commit()
        conn.close()

    def invalidate(self, key: str) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute("DELETE FROM response WHERE key = ?", (key,))
        conn.commit()
        conn.close()

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were removed."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.execute("DELETE FROM response WHERE expires_at <= ?", (time.time(),))
        removed_count = cursor.rowcount
        conn.commit()
        conn.close()
        return removed_count

    def clear(self) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute("DELETE FROM response")
        conn.commit()
        conn.close()


def make_cache_key(url: str, params: dict[str, str] | None = None) -> str:
    """Stable cache key for a GET request."""
    if not params:
        return url
    return url + "?" + "&".join(f"{k}={v}" for k, v in sorted(params.items()))

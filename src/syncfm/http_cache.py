from __future__ import annotations

import hashlib
import json
import sqlite3
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any


def cache_key(catalog: str, url: str, params: Mapping[str, Any] | None = None) -> str:
    """Stable key for a catalog GET request; parameter order does not matter."""
    query = "&".join(f"{k}={params[k]}" for k in sorted(params or {}))
    return hashlib.sha256(f"{catalog}|{url}?{query}".encode()).hexdigest()


class ResponseCache:
    """
    SQLite cache of decoded catalog JSON responses with a per-entry TTL.

    Only successful GET payloads are stored. Entries are keyed by catalog,
    URL and query parameters, so credentials in headers never reach disk.
    """

    def __init__(self, db_path: Path, ttl_seconds: int = 86400):
        self.db_path = Path(db_path)
        self.ttl_seconds = ttl_seconds
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS response_cache (
                key TEXT PRIMARY KEY,
                catalog TEXT NOT NULL,
                url TEXT NOT NULL,
                body TEXT NOT NULL,
                cached_at REAL NOT NULL,
                expires_at REAL NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_expires_at ON response_cache(expires_at)")
        conn.commit()
        conn.close()

    def get(
        self, catalog: str, url: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Return the cached payload, or None when missing or expired."""
        conn = self._connect()
        row = conn.execute(
            "SELECT body FROM response_cache WHERE key = ? AND expires_at > ?",
            (cache_key(catalog, url, params), time.time()),
        ).fetchone()
        conn.close()
        if not row:
            return None
        return json.loads(row["body"])

    def put(
        self,
        catalog: str,
        url: str,
        params: Mapping[str, Any] | None,
        payload: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        cached_at = time.time()
        expires_at = cached_at + (ttl_seconds if ttl_seconds is not None else self.ttl_seconds)
        conn = self._connect()
        conn.execute(
            """
            INSERT OR REPLACE INTO response_cache (key, catalog, url, body, cached_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                cache_key(catalog, url, params),
                catalog,
                url,
                json.dumps(payload),
                cached_at,
                expires_at,
            ),
        )
        conn.commit()
        conn.close()

    def invalidate(self, catalog: str, url: str, params: Mapping[str, Any] | None = None) -> None:
        conn = self._connect()
        conn.execute("DELETE FROM response_cache WHERE key = ?", (cache_key(catalog, url, params),))
        conn.commit()
        conn.close()

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were removed."""
        conn = self._connect()
        cursor = conn.execute("DELETE FROM response_cache WHERE expires_at <= ?", (time.time(),))
        removed = cursor.rowcount
        conn.commit()
        conn.close()
        return removed

    def clear(self, catalog: str | None = None) -> None:
        conn = self._connect()
        if catalog:
            conn.execute("DELETE FROM response_cache WHERE catalog = ?", (catalog,))
        else:
            conn.execute("DELETE FROM response_cache")
        conn.commit()
        conn.close()


## Tests


def test_response_cache_roundtrip(tmp_path):
    cache = ResponseCache(tmp_path / "cache.sqlite", ttl_seconds=3600)
    cache.put("spotify", "https://api.spotify.com/v1/tracks/1", None, {"id": "1"})

    assert cache.get("spotify", "https://api.spotify.com/v1/tracks/1") == {"id": "1"}
    assert cache.get("ytmusic", "https://api.spotify.com/v1/tracks/1") is None


def test_response_cache_params_order_independent(tmp_path):
    cache = ResponseCache(tmp_path / "cache.sqlite")
    cache.put("applemusic", "https://itunes.apple.com/search", {"a": 1, "b": 2}, {"ok": True})

    assert cache.get("applemusic", "https://itunes.apple.com/search", {"b": 2, "a": 1}) == {
        "ok": True
    }


def test_response_cache_expiry(tmp_path):
    from freezegun import freeze_time

    cache = ResponseCache(tmp_path / "cache.sqlite", ttl_seconds=60)
    with freeze_time("2024-01-01 12:00:00") as frozen:
        cache.put("spotify", "https://x", None, {"v": 1})
        assert cache.get("spotify", "https://x") == {"v": 1}
        frozen.tick(61)
        assert cache.get("spotify", "https://x") is None
        assert cache.purge_expired() == 1

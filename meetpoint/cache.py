"""SQLite cache for Places search responses and AI venue profiles."""
from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def make_request_cache_key(url: str, field_mask: str, body: Dict[str, Any]) -> str:
    payload = json.dumps(body, sort_keys=True, separators=(",", ":"))
    raw = f"{url}|{field_mask}|{payload}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


PROFILE_FIELDS = ("romantic", "casual", "upscale", "energetic", "date_worthy")


class Cache:
    # Shared across asyncio.to_thread workers; every statement holds _lock.
    def __init__(self, db_path: str, commit_every: int = 20) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._pending_writes = 0
        self._commit_every = max(1, int(commit_every))
        self._configure_conn()
        self._init_db()

    def _configure_conn(self) -> None:
        cur = self.conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.fetchone()
        except sqlite3.DatabaseError:
            pass
        try:
            cur.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.DatabaseError:
            pass

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS places_search_cache (
                key TEXT PRIMARY KEY,
                response_json TEXT,
                created_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS venue_ai_profiles (
                venue_name TEXT PRIMARY KEY,
                romantic REAL,
                casual REAL,
                upscale REAL,
                energetic REAL,
                date_worthy REAL,
                venue_type TEXT,
                cuisine TEXT,
                created_at TEXT
            )
            """
        )
        self.conn.commit()

    def _mark_dirty(self) -> None:
        self._pending_writes += 1
        if self._pending_writes >= self._commit_every:
            self._commit_locked()

    def _commit_locked(self) -> None:
        if self._pending_writes:
            self.conn.commit()
            self._pending_writes = 0

    def commit(self) -> None:
        with self._lock:
            self._commit_locked()

    def close(self) -> None:
        self.commit()
        self.conn.close()

    def get_search_cache(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT response_json FROM places_search_cache WHERE key = ?", (key,))
            row = cur.fetchone()
        if not row:
            return None
        return json.loads(row["response_json"])

    def set_search_cache(self, key: str, response: Dict[str, Any]) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT OR REPLACE INTO places_search_cache (key, response_json, created_at)
                VALUES (?, ?, ?)
                """,
                (key, json.dumps(response), utc_now_iso()),
            )
            self._mark_dirty()

    def get_venue_profile(self, venue_name: str) -> Optional[Dict[str, float]]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM venue_ai_profiles WHERE venue_name = ?", (venue_name,))
            row = cur.fetchone()
        if not row:
            return None
        return {name: float(row[name]) for name in PROFILE_FIELDS}

    def set_venue_profile(
        self,
        venue_name: str,
        profile: Dict[str, float],
        venue_type: Optional[str] = None,
        cuisine: Optional[str] = None,
    ) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO venue_ai_profiles (
                    venue_name, romantic, casual, upscale, energetic, date_worthy,
                    venue_type, cuisine, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(venue_name) DO UPDATE SET
                    romantic = excluded.romantic,
                    casual = excluded.casual,
                    upscale = excluded.upscale,
                    energetic = excluded.energetic,
                    date_worthy = excluded.date_worthy,
                    venue_type = excluded.venue_type,
                    cuisine = excluded.cuisine,
                    created_at = excluded.created_at
                """,
                (
                    venue_name,
                    *(float(profile[name]) for name in PROFILE_FIELDS),
                    venue_type,
                    cuisine,
                    utc_now_iso(),
                ),
            )
            self._mark_dirty()

"""Durable client-side cache for identity, bookings and archive."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..records import Playlist, decode_records

logger = logging.getLogger(__name__)

SCHEMA = """
-- Key/value entries, values stored as JSON text
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

CURRENT_USER_KEY = "currentUser"
IS_ADMIN_KEY = "isAdmin"
CACHED_PLAYLISTS_PREFIX = "cachedPlaylists_"
ARCHIVE_KEY = "archivedPlaylists"

# First-booking celebration metadata
FIRST_CREATION_TIME_KEY = "firstPlaylistCreationTime"
FIRST_LINK_KEY = "firstPlaylistWhatsappLink"
FIRST_CREATED_KEY = "firstPlaylistCreated"
FIRST_SHOWN_KEY = "firstPlaylistMessageShown"

CELEBRATION_KEYS = (
    FIRST_CREATION_TIME_KEY,
    FIRST_LINK_KEY,
    FIRST_CREATED_KEY,
    FIRST_SHOWN_KEY,
)


def cache_scope(username: str, is_admin: bool) -> str:
    """Scope under which the current list is cached for an identity."""
    return "admin" if is_admin else username


class LocalCache:
    """SQLite-backed key/value store standing in for browser storage."""

    def __init__(self, db_path: str | Path):
        """Initialize the local cache.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests).
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"LocalCache connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalCache connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    # ==================== Raw Operations ====================

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value; corrupt entries read as the default."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT value FROM cache_entries WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except ValueError:
            logger.warning(f"Discarding corrupt cache entry {key}")
            return default

    def set(self, key: str, value: Any) -> None:
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO cache_entries (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), datetime.now().isoformat()),
        )
        conn.commit()

    def delete(self, *keys: str) -> int:
        """Remove keys. Returns the number of entries removed."""
        if not keys:
            return 0
        conn = self._ensure_connected()
        cursor = conn.executemany(
            "DELETE FROM cache_entries WHERE key = ?", [(k,) for k in keys]
        )
        conn.commit()
        return cursor.rowcount

    def keys(self, prefix: str = "") -> list[str]:
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT key FROM cache_entries WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%",),
        ).fetchall()
        return [row["key"] for row in rows]

    # ==================== Identity ====================

    @property
    def current_user(self) -> str | None:
        return self.get(CURRENT_USER_KEY)

    @property
    def is_admin(self) -> bool:
        return self.get(IS_ADMIN_KEY) is True

    def set_identity(self, username: str, is_admin: bool = False) -> None:
        self.set(CURRENT_USER_KEY, username)
        if is_admin:
            self.set(IS_ADMIN_KEY, True)
        else:
            self.delete(IS_ADMIN_KEY)

    def clear_identity(self) -> None:
        """Forget the logged-in identity and every cached current list."""
        cached = self.keys(CACHED_PLAYLISTS_PREFIX)
        self.delete(CURRENT_USER_KEY, IS_ADMIN_KEY, *cached)

    # ==================== Bookings ====================

    def load_playlists(self, scope: str) -> list[Playlist]:
        data = self.get(CACHED_PLAYLISTS_PREFIX + scope, [])
        if not isinstance(data, list):
            return []
        return decode_records(data, wire=False)

    def save_playlists(self, scope: str, playlists: list[Playlist]) -> None:
        self.set(CACHED_PLAYLISTS_PREFIX + scope, [p.to_dict() for p in playlists])

    def load_archive(self) -> list[Playlist]:
        data = self.get(ARCHIVE_KEY, [])
        if not isinstance(data, list):
            return []
        return decode_records(data, wire=False)

    def save_archive(self, playlists: list[Playlist]) -> None:
        self.set(ARCHIVE_KEY, [p.to_dict() for p in playlists])

    # ==================== Celebration ====================

    def clear_celebration(self) -> None:
        self.delete(*CELEBRATION_KEYS)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "db_path": str(self.db_path),
            "current_user": self.current_user,
            "is_admin": self.is_admin,
            "cached_scopes": [
                k[len(CACHED_PLAYLISTS_PREFIX):]
                for k in self.keys(CACHED_PLAYLISTS_PREFIX)
            ],
            "archive_count": len(self.get(ARCHIVE_KEY, []) or []),
        }

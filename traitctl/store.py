"""
Key-Value Store — SQLite Persistent Backend

Tables:
    kv           - Versioned JSON payloads by key (registry, index record)
    schema_meta  - Schema metadata for forward compatibility

Thread safety: uses sqlite3 check_same_thread=False with explicit serialization.
``get`` and ``set`` never raise: storage faults are logged and reported as
``None`` / ``False`` so a session can keep running in memory.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Per-value quota (bytes, UTF-8)
DEFAULT_MAX_VALUE_BYTES = 5 * 1024 * 1024

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

-- Schema metadata for forward compatibility
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class KVStore:
    """
    SQLite-backed string key-value store.

    Thread-safe via explicit lock.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        wal_mode: bool = True,
        max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES,
    ):
        """Open (or create) the store.

        Args:
            db_path: SQLite database path (or ":memory:" for in-memory).
            wal_mode: Enable WAL journal mode for concurrent readers.
            max_value_bytes: Values larger than this are refused by ``set``.
        """
        self._db_path = db_path
        self._lock = threading.Lock()
        self._max_value_bytes = max_value_bytes
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if wal_mode and db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.execute(
            "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        self._conn.execute(
            "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('created_by', 'traitctl')",
        )
        self._conn.execute(
            "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('created_at', datetime('now'))",
        )
        self._conn.commit()
        logger.info(f"KVStore initialized: {db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._conn.close()

    # -- Key-value operations ----------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Value for key, or None if absent or unreadable."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value FROM kv WHERE key=?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("KV read failed for %r: %s", key, exc)
            return None
        return row["value"] if row else None

    def set(self, key: str, value: str) -> bool:
        """Store value under key. Returns False on quota or storage fault."""
        size = len(value.encode("utf-8"))
        if size > self._max_value_bytes:
            logger.warning(
                "KV write refused for %r: %d bytes exceeds quota of %d",
                key, size, self._max_value_bytes,
            )
            return False
        try:
            with self._lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) "
                    "VALUES (?, ?, datetime('now'))",
                    (key, value),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            logger.warning("KV write failed for %r: %s", key, exc)
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove key. Returns True if a row was deleted."""
        with self._lock:
            cur = self._conn.execute("DELETE FROM kv WHERE key=?", (key,))
            self._conn.commit()
            return cur.rowcount > 0

    def keys(self) -> List[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    # -- Stats -------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Summary statistics for the store."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, LENGTH(CAST(value AS BLOB)) AS size, updated_at FROM kv ORDER BY key"
            ).fetchall()
            meta = {
                r["key"]: r["value"]
                for r in self._conn.execute("SELECT key, value FROM schema_meta").fetchall()
            }
        return {
            "db_path": self._db_path,
            "schema_version": int(meta.get("schema_version", SCHEMA_VERSION)),
            "created_at": meta.get("created_at"),
            "keys": len(rows),
            "total_bytes": sum(r["size"] or 0 for r in rows),
            "entries": [
                {"key": r["key"], "bytes": r["size"], "updated_at": r["updated_at"]}
                for r in rows
            ],
        }

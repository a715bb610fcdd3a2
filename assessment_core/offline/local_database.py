# =============================================================================
# assessment_core/offline/local_database.py
# Local SQLite store: last assembled tree and cached attachment payloads
# =============================================================================
"""
LocalDatabase - SQLite-backed persistent store for offline / instant-load use.

Tables:
- hospitals:    one row per hospital id, the whole assembled subtree as JSON
- files:        attachment payloads keyed by public locator
- app_settings: small key/value pairs (last successful sync time, ...)

The hospitals table is only ever replaced wholesale by a successful refresh.
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from assessment_core.logging import get_logger

logger = get_logger(__name__)


class LocalDatabase:
    """
    Local SQLite database for the hospital tree and attachment cache.

    Use ``":memory:"`` as ``db_path`` for a throwaway store.
    """

    SCHEMA = {
        "hospitals": """
            CREATE TABLE IF NOT EXISTS hospitals (
                id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
        "files": """
            CREATE TABLE IF NOT EXISTS files (
                id TEXT PRIMARY KEY,
                data BLOB NOT NULL,
                content_type TEXT,
                cached_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Path | str):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> LocalDatabase:
        """Initialize database schema."""
        if self._initialized:
            return self

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")
        return self

    # =========================================================================
    # HOSPITAL TREE
    # =========================================================================

    def replace_hospitals(self, hospitals: List[Dict[str, Any]]) -> int:
        """
        Replace the stored tree with ``hospitals`` (clear + bulk put).

        Returns:
            Number of hospitals written
        """
        now = datetime.now().isoformat()
        rows = [
            (h["id"], json.dumps(h, ensure_ascii=False), now)
            for h in hospitals
        ]
        with self.transaction() as conn:
            conn.execute("DELETE FROM hospitals")
            conn.executemany(
                "INSERT INTO hospitals (id, data_json, updated_at) VALUES (?, ?, ?)",
                rows,
            )
        return len(rows)

    def load_hospitals(self) -> List[Dict[str, Any]]:
        """Return the last stored tree (empty list when nothing was stored)."""
        rows = self._get_connection().execute(
            "SELECT data_json FROM hospitals ORDER BY rowid"
        ).fetchall()
        return [json.loads(row["data_json"]) for row in rows]

    def get_hospital(self, hospital_id: str) -> Optional[Dict[str, Any]]:
        row = self._get_connection().execute(
            "SELECT data_json FROM hospitals WHERE id = ?", [hospital_id]
        ).fetchone()
        return json.loads(row["data_json"]) if row else None

    # =========================================================================
    # ATTACHMENT PAYLOADS
    # =========================================================================

    def put_file(self, locator: str, data: bytes, content_type: Optional[str]) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO files (id, data, content_type, cached_at)
                VALUES (?, ?, ?, ?)
                """,
                [locator, sqlite3.Binary(data), content_type, datetime.now().isoformat()],
            )

    def get_file(self, locator: str) -> Optional[Tuple[bytes, Optional[str]]]:
        row = self._get_connection().execute(
            "SELECT data, content_type FROM files WHERE id = ?", [locator]
        ).fetchone()
        if row is None:
            return None
        return bytes(row["data"]), row["content_type"]

    def delete_file(self, locator: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM files WHERE id = ?", [locator])
            return cursor.rowcount > 0

    def all_files(self) -> List[Tuple[str, bytes, Optional[str]]]:
        rows = self._get_connection().execute(
            "SELECT id, data, content_type FROM files ORDER BY id"
        ).fetchall()
        return [(row["id"], bytes(row["data"]), row["content_type"]) for row in rows]

    def clear_files(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM files")

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        row = self._get_connection().execute(
            "SELECT value FROM app_settings WHERE key = ?", [key]
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        value_str = json.dumps(value) if not isinstance(value, str) else value
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_str, datetime.now().isoformat()],
            )

    def close(self) -> None:
        """Close database connection."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None

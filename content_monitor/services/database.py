"""SQLite database service."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Generator

logger = structlog.get_logger(__name__)

EVENT_TABLES: dict[str, str] = {
    "CHANGE": "content_changes",
    "ALERT": "content_alerts",
    "REVIEW": "content_reviews",
    "FAILURE": "content_failures",
}

# Columns shared by every event table
_EVENT_COLUMNS = """
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    updated_by TEXT NOT NULL DEFAULT '',
                    code TEXT NOT NULL,
                    organisation TEXT NOT NULL DEFAULT '',
                    monitor_id TEXT NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,"""


class Database:
    """SQLite database service with schema management.

    One connection is shared by all threads; statements are serialized with
    a re-entrant lock so monitors can be checked from a worker pool.
    """

    def __init__(self, db_path: str = "data/monitors.db") -> None:
        self.db_path = db_path
        self._ensure_directory()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _ensure_directory(self) -> None:
        """Ensure the parent directory of the database file exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        with self._lock:
            if self._connection is None:
                self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA journal_mode=WAL")
                self._connection.execute("PRAGMA foreign_keys=ON")
            return self._connection

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self.connection
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def execute(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement."""
        with self._lock:
            return self.connection.execute(sql, params)

    def fetchone(
        self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()
    ) -> sqlite3.Row | None:
        """Execute and fetch one row."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchone()

    def fetchall(
        self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()
    ) -> list[sqlite3.Row]:
        """Execute and fetch all rows."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    def upsert(
        self, table: str, record: dict[str, Any], keys: tuple[str, ...] = ("id",)
    ) -> None:
        """Insert a record, replacing the non-key columns if the keys already exist."""
        columns = list(record)
        updates = ", ".join(
            f"{column} = excluded.{column}" for column in columns if column not in keys
        )
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({', '.join(keys)}) DO UPDATE SET {updates}"
        )
        with self.transaction() as cursor:
            cursor.execute(sql, tuple(record[column] for column in columns))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def init_db(self) -> None:
        """Initialize database schema. Creates all tables and indexes."""
        logger.info("initializing_database", path=self.db_path)

        with self.transaction() as cursor:
            # monitors table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS monitors (
                    id TEXT PRIMARY KEY,
                    guid TEXT NOT NULL UNIQUE,
                    code TEXT NOT NULL,
                    organisation TEXT NOT NULL DEFAULT '',
                    content_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    interval INTEGER NOT NULL DEFAULT 60,
                    sites TEXT NOT NULL DEFAULT '[]',
                    max_results INTEGER,
                    keywords TEXT NOT NULL DEFAULT '[]',
                    min_difference INTEGER NOT NULL DEFAULT 0,
                    alerts INTEGER NOT NULL DEFAULT 1,
                    url TEXT NOT NULL DEFAULT '',
                    channel_id TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    snapshot TEXT NOT NULL DEFAULT '',
                    event_type TEXT,
                    event_id TEXT NOT NULL DEFAULT '',
                    executed_at TEXT,
                    success_at TEXT,
                    execution_time INTEGER NOT NULL DEFAULT -1,
                    error_message TEXT NOT NULL DEFAULT '',
                    retry INTEGER NOT NULL DEFAULT 0,
                    title TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_monitors_code ON monitors(code)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_monitors_status ON monitors(status)")

            # content_changes table
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS content_changes ({_EVENT_COLUMNS}
                    snapshot_before TEXT NOT NULL DEFAULT '',
                    snapshot_after TEXT NOT NULL DEFAULT '',
                    snapshot_diff TEXT NOT NULL DEFAULT '',
                    difference INTEGER NOT NULL DEFAULT 0,
                    execution_time INTEGER NOT NULL DEFAULT -1,
                    FOREIGN KEY (monitor_id) REFERENCES monitors(id) ON DELETE CASCADE
                )
            """)

            # content_alerts table
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS content_alerts ({_EVENT_COLUMNS}
                    reason TEXT NOT NULL,
                    effective_date TEXT,
                    change INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (monitor_id) REFERENCES monitors(id) ON DELETE CASCADE
                )
            """)

            # content_reviews table
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS content_reviews ({_EVENT_COLUMNS}
                    reason TEXT NOT NULL,
                    review_date TEXT,
                    FOREIGN KEY (monitor_id) REFERENCES monitors(id) ON DELETE CASCADE
                )
            """)

            # content_failures table
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS content_failures ({_EVENT_COLUMNS}
                    reason TEXT NOT NULL,
                    review_date TEXT,
                    session_id INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (monitor_id) REFERENCES monitors(id) ON DELETE CASCADE
                )
            """)

            for table in EVENT_TABLES.values():
                cursor.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_monitor_id ON {table}(monitor_id)"
                )
                cursor.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"
                )

            # stored_content table: previously published items used for reconciliation
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS stored_content (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    identifier TEXT NOT NULL,
                    published_date TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    UNIQUE(code, content_type, identifier)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_stored_content_title "
                "ON stored_content(code, content_type, title)"
            )

        logger.info("database_initialized", path=self.db_path)

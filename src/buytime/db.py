"""SQLite key/value layer shared between BuyTime processes."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"
BUSY_TIMEOUT_MS = 5000


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    configure_concurrency(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def configure_concurrency(conn: sqlite3.Connection) -> None:
    # Several processes open the same file; WAL lets readers proceed during a write.
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS};")
    conn.execute("PRAGMA journal_mode = WAL;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def fetch_value(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def upsert_value(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, value, datetime.now().strftime(DATETIME_FMT)),
    )


def delete_value(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))


class KeyValueStore(Protocol):
    """Durable scalar storage; each single-key write is atomic."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def contains(self, key: str) -> bool:
        ...


class SqliteKeyValueStore:
    """Key/value store backed by a SQLite file that other processes may open.

    Each call opens its own connection so that a value written by another
    process is visible on the next read.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with database_connection(self.db_path):
            pass

    def get(self, key: str, default: Any = None) -> Any:
        with database_connection(self.db_path) as conn:
            raw = fetch_value(conn, key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with database_connection(self.db_path) as conn:
            upsert_value(conn, key, payload)

    def delete(self, key: str) -> None:
        with database_connection(self.db_path) as conn:
            delete_value(conn, key)

    def contains(self, key: str) -> bool:
        with database_connection(self.db_path) as conn:
            return fetch_value(conn, key) is not None


class MemoryKeyValueStore:
    """In-process stand-in for :class:`SqliteKeyValueStore`."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._values.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._values[key] = payload

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._values

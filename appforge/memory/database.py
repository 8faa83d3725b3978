"""SQLite persistence shared by the constraint memory and the build history.

One lazily opened, long-lived connection per :class:`Database`. The journal
runs in WAL mode with a busy timeout, every write commits immediately, and a
``database is locked`` error is retried with exponential backoff. If the file
cannot be opened at all the database marks itself unavailable, prints one
warning, and every store built on it degrades to a no-op.
"""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from ..errors import PersistenceUnavailableError
from ..utils import print_warning

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS builds (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL,
    framework   TEXT NOT NULL,
    prompt      TEXT NOT NULL,
    status      TEXT NOT NULL,
    exe_path    TEXT,
    source_dir  TEXT,
    provider    TEXT NOT NULL DEFAULT '',
    model       TEXT NOT NULL DEFAULT '',
    branded     INTEGER NOT NULL DEFAULT 1,
    build_time  REAL NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_builds_name ON builds(name);

CREATE TABLE IF NOT EXISTS build_memory (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    framework        TEXT NOT NULL,
    constraint_text  TEXT NOT NULL,
    error_pattern    TEXT,
    hit_count        INTEGER NOT NULL DEFAULT 1,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    UNIQUE(framework, constraint_text)
);
"""


def _is_locked(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


class Database:
    """Lazy SQLite connection with retry-on-lock.

    Parameters
    ----------
    path:
        Database file; ``":memory:"`` is accepted for tests.
    retry_attempts:
        Attempts per statement when the database is locked.
    retry_base_delay:
        First backoff delay in seconds; doubles on every retry.
    busy_timeout:
        Seconds SQLite itself waits on a lock before raising.
    """

    def __init__(
        self,
        path: Union[str, Path],
        retry_attempts: int = 5,
        retry_base_delay: float = 0.05,
        busy_timeout: float = 5.0,
    ) -> None:
        self.path = str(path)
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self.busy_timeout = busy_timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._unavailable: Optional[str] = None

    @classmethod
    def from_config(cls, config: Any) -> "Database":
        storage = config.storage
        return cls(
            config.db_path,
            retry_attempts=storage.retry_attempts,
            retry_base_delay=storage.retry_base_delay,
            busy_timeout=storage.busy_timeout,
        )

    @property
    def available(self) -> bool:
        if self._unavailable is not None:
            return False
        try:
            self.connection()
        except PersistenceUnavailableError:
            return False
        return True

    def connection(self) -> sqlite3.Connection:
        """Open on first use; raises :class:`PersistenceUnavailableError`."""
        if self._conn is not None:
            return self._conn
        if self._unavailable is not None:
            raise PersistenceUnavailableError(self._unavailable, self.path)

        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.path, timeout=self.busy_timeout)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout * 1000)}")
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            self._unavailable = f"Cannot open build database: {exc}"
            print_warning(f"{self._unavailable} ({self.path}); build history and memory are disabled")
            raise PersistenceUnavailableError(self._unavailable, self.path) from exc

        self._conn = conn
        return conn

    def with_retry(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """Run *operation* against the connection, retrying while locked."""
        conn = self.connection()
        delay = self.retry_base_delay
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return operation(conn)
            except sqlite3.OperationalError as exc:
                if conn.in_transaction:
                    conn.rollback()
                if not _is_locked(exc) or attempt == self.retry_attempts:
                    raise
                time.sleep(delay)
                delay *= 2
        raise AssertionError("unreachable")

    def execute(self, sql: str, params: tuple = ()) -> int:
        """Run one write statement and commit. Returns the affected row count."""

        def _write(conn: sqlite3.Connection) -> int:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount

        return self.with_retry(_write)

    def insert(self, sql: str, params: tuple = ()) -> int:
        """Run one INSERT and commit. Returns the new row id."""

        def _insert(conn: sqlite3.Connection) -> int:
            cur = conn.execute(sql, params)
            conn.commit()
            return int(cur.lastrowid)

        return self.with_retry(_insert)

    def query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.with_retry(lambda conn: conn.execute(sql, params).fetchall())

    def guarded(self, operation: Callable[[], T], default: T) -> T:
        """Run a store operation; on any persistence failure return *default*.

        Stores call through here so a broken database never aborts a build.
        """
        try:
            return operation()
        except PersistenceUnavailableError:
            return default
        except sqlite3.Error as exc:
            print_warning(f"Build database error ({self.path}): {exc}")
            return default

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

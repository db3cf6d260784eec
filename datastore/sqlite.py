"""Shared SQLite plumbing: connections, schema versioning and error mapping.

Every operation opens its own short-lived connection, so any number of
service processes can point at the same database file. Atomicity comes from
SQLite itself (unique constraints and single conditional statements), never
from in-process locks.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from services.errors import StorageError

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_SECONDS = 30.0

# Applied in order; ``PRAGMA user_version`` records how many have run.
MIGRATIONS: Sequence[str] = (
    """
    CREATE TABLE IF NOT EXISTS alerts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        reading_id TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        severity TEXT NOT NULL,
        temperature REAL NOT NULL,
        humidity REAL NOT NULL,
        pressure REAL NOT NULL,
        message TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_alerts_created_at ON alerts(created_at);
    """,
    """
    CREATE TABLE IF NOT EXISTS cooldown_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        last_dispatched_at REAL NOT NULL DEFAULT 0,
        previous_dispatched_at REAL NOT NULL DEFAULT 0
    );
    INSERT OR IGNORE INTO cooldown_state (id, last_dispatched_at, previous_dispatched_at)
    VALUES (1, 0, 0);
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_config (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        payload TEXT NOT NULL
    );
    """,
)


@contextmanager
def connect(path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and always closes.

    ``sqlite3.Error`` raised inside the block surfaces as ``StorageError``.
    """

    try:
        conn = sqlite3.connect(str(path), timeout=_BUSY_TIMEOUT_SECONDS)
    except sqlite3.Error as exc:
        raise StorageError(f"Cannot open database {str(path)!r}: {exc}") from exc
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc
    finally:
        conn.close()


def ensure_schema(path: Path) -> None:
    """Create the database file if needed and apply pending migrations."""

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        conn = sqlite3.connect(str(path), timeout=_BUSY_TIMEOUT_SECONDS, isolation_level=None)
    except sqlite3.Error as exc:
        raise StorageError(f"Cannot open database {str(path)!r}: {exc}") from exc
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        # Take the write lock before reading the version so concurrent
        # starters do not apply the same migration twice.
        conn.execute("BEGIN IMMEDIATE")
        try:
            current = conn.execute("PRAGMA user_version").fetchone()[0]
            for version, script in enumerate(MIGRATIONS[current:], start=current + 1):
                for statement in _split_statements(script):
                    conn.execute(statement)
                conn.execute(f"PRAGMA user_version = {version}")
                logger.info("Applied schema migration %d to %s", version, path)
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
    except sqlite3.Error as exc:
        raise StorageError(f"Schema migration failed for {str(path)!r}: {exc}") from exc
    finally:
        conn.close()


def _split_statements(script: str) -> list[str]:
    return [statement.strip() for statement in script.split(";") if statement.strip()]

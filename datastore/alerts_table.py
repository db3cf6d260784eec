from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional

from app.schemas import AlertRecord, to_utc
from datastore.sqlite import connect, ensure_schema
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 100


@dataclass(frozen=True)
class InsertResult:
    """Outcome of ``insert_if_absent``: the persisted row and whether this call created it."""

    created: bool
    record: AlertRecord


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return max(1, min(int(limit), MAX_LIST_LIMIT))


def _encode_timestamp(value: datetime) -> str:
    # Fixed width keeps lexical order equal to chronological order.
    return to_utc(value).isoformat(timespec="microseconds")


def _row_to_record(row: sqlite3.Row) -> AlertRecord:
    return AlertRecord(
        id=row["id"],
        reading_id=row["reading_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        severity=row["severity"],
        temperature=row["temperature"],
        humidity=row["humidity"],
        pressure=row["pressure"],
        message=row["message"],
    )


class AlertsTable:
    """Deduplicating alert store keyed by ``reading_id``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        ensure_schema(path)

    def insert_if_absent(self, record: AlertRecord) -> InsertResult:
        """Persist ``record`` unless a row with the same ``reading_id`` exists.

        Uniqueness is enforced by the table's constraint, so two concurrent
        calls for the same key yield exactly one ``created=True``.
        """

        with connect(self.path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO alerts
                    (reading_id, created_at, severity, temperature, humidity, pressure, message)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (reading_id) DO NOTHING
                """,
                (
                    record.reading_id,
                    _encode_timestamp(record.created_at),
                    record.severity.value,
                    record.temperature,
                    record.humidity,
                    record.pressure,
                    record.message,
                ),
            )
            created = cursor.rowcount == 1
            row = conn.execute(
                "SELECT * FROM alerts WHERE reading_id = ?", (record.reading_id,)
            ).fetchone()

        if row is None:
            raise StorageError(f"Alert for reading {record.reading_id!r} vanished after insert.")

        stored = _row_to_record(row)
        if created:
            logger.info(
                "Stored alert",
                extra={"reading_id": stored.reading_id, "severity": stored.severity},
            )
        else:
            logger.info("Duplicate reading ignored", extra={"reading_id": stored.reading_id})
        return InsertResult(created=created, record=stored)

    def list(self, limit: Optional[int] = None) -> list[AlertRecord]:
        """Return up to ``limit`` alerts, newest first."""

        with connect(self.path) as conn:
            rows = conn.execute(
                "SELECT * FROM alerts ORDER BY created_at DESC, id DESC LIMIT ?",
                (clamp_limit(limit),),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def clear(self) -> int:
        with connect(self.path) as conn:
            cursor = conn.execute("DELETE FROM alerts")
            deleted = cursor.rowcount
        logger.warning("Cleared alert history (%d rows)", deleted)
        return deleted


@lru_cache
def build_default_table(path: Optional[str] = None) -> AlertsTable:
    settings = get_settings()
    table_path = settings.database_path if path is None else path
    return AlertsTable(path=Path(table_path))

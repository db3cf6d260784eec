"""Unit tests for the deduplicating alert store."""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from app.schemas import AlertRecord
from datastore.alerts_table import AlertsTable, clamp_limit
from models.records import Severity
from services.errors import StorageError

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _record(reading_id: str = "1700000000000", minutes: int = 0, **overrides) -> AlertRecord:
    fields = dict(
        reading_id=reading_id,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        severity=Severity.warning,
        temperature=32.0,
        humidity=50.0,
        pressure=1000.0,
        message="Temperature: 32°C (limit: 30°C)",
    )
    fields.update(overrides)
    return AlertRecord(**fields)


def test_insert_if_absent_creates_then_ignores_duplicate(tmp_path: Path) -> None:
    table = AlertsTable(tmp_path / "alerts.db")

    first = table.insert_if_absent(_record())
    second = table.insert_if_absent(
        _record(severity=Severity.critical, temperature=40.0, message="changed")
    )

    assert first.created is True
    assert second.created is False
    assert second.record == first.record
    rows = table.list()
    assert len(rows) == 1
    assert rows[0].severity is Severity.warning
    assert rows[0].temperature == 32.0
    assert rows[0].message == "Temperature: 32°C (limit: 30°C)"


def test_round_trip_preserves_fields(tmp_path: Path) -> None:
    table = AlertsTable(tmp_path / "alerts.db")
    original = _record(
        severity=Severity.critical,
        temperature=36.0,
        humidity=90.0,
        pressure=1035.5,
        message="a | b | c",
        created_at=datetime(2024, 3, 1, 8, 30, 15, 250000, tzinfo=timezone.utc),
    )

    table.insert_if_absent(original)
    (fetched,) = table.list()

    assert fetched.id is not None
    assert fetched.model_dump(exclude={"id"}) == original.model_dump(exclude={"id"})


def test_list_orders_newest_first_and_clamps(tmp_path: Path) -> None:
    table = AlertsTable(tmp_path / "alerts.db")
    for index in range(12):
        table.insert_if_absent(_record(reading_id=f"r-{index}", minutes=index))

    default = table.list()
    assert [row.reading_id for row in default] == [f"r-{index}" for index in range(11, 1, -1)]
    assert len(table.list(0)) == 1
    assert len(table.list(-5)) == 1
    assert len(table.list(500)) == 12
    assert clamp_limit(None) == 10
    assert clamp_limit(1000) == 100


def test_ids_are_monotonic(tmp_path: Path) -> None:
    table = AlertsTable(tmp_path / "alerts.db")
    first = table.insert_if_absent(_record(reading_id="a")).record
    second = table.insert_if_absent(_record(reading_id="b")).record

    assert second.id > first.id


def test_clear_removes_everything(tmp_path: Path) -> None:
    table = AlertsTable(tmp_path / "alerts.db")
    table.insert_if_absent(_record(reading_id="a"))
    table.insert_if_absent(_record(reading_id="b"))

    assert table.clear() == 2
    assert table.list() == []
    assert table.insert_if_absent(_record(reading_id="a")).created is True


def test_rows_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "alerts.db"
    AlertsTable(path).insert_if_absent(_record())

    reopened = AlertsTable(path)

    assert [row.reading_id for row in reopened.list()] == ["1700000000000"]
    assert reopened.insert_if_absent(_record()).created is False


def test_concurrent_inserts_create_exactly_one_row(tmp_path: Path) -> None:
    path = tmp_path / "alerts.db"
    workers = 8
    tables = [AlertsTable(path) for _ in range(workers)]
    barrier = threading.Barrier(workers)
    outcomes: list[bool] = []
    lock = threading.Lock()

    def worker(table: AlertsTable) -> None:
        barrier.wait(timeout=5)
        created = table.insert_if_absent(_record()).created
        with lock:
            outcomes.append(created)

    threads = [threading.Thread(target=worker, args=(table,)) for table in tables]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(outcomes) == [False] * (workers - 1) + [True]
    assert len(tables[0].list(100)) == 1


def test_storage_failures_surface_as_storage_error(tmp_path: Path, monkeypatch) -> None:
    table = AlertsTable(tmp_path / "alerts.db")

    def broken_connect(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr("datastore.sqlite.sqlite3.connect", broken_connect)

    with pytest.raises(StorageError):
        table.insert_if_absent(_record())
    with pytest.raises(StorageError):
        table.list()

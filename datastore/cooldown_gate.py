from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional

from datastore.sqlite import connect, ensure_schema
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 300.0


class CooldownGate:
    """Durable notification throttle shared by every process using ``path``.

    The state is a single row holding ``last_dispatched_at`` (epoch seconds).
    ``previous_dispatched_at`` keeps the value an acquisition replaced so a
    failed dispatch can hand the window back.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        ensure_schema(path)

    def try_acquire(self, now: datetime, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> bool:
        """Atomically claim the gate if ``window_seconds`` have elapsed since the last claim."""

        stamp = now.timestamp()
        with connect(self.path) as conn:
            cursor = conn.execute(
                """
                UPDATE cooldown_state
                SET previous_dispatched_at = last_dispatched_at,
                    last_dispatched_at = ?
                WHERE id = 1 AND ? - last_dispatched_at >= ?
                """,
                (stamp, stamp, window_seconds),
            )
            return cursor.rowcount == 1

    def release(self, acquired_at: datetime) -> bool:
        """Undo the acquisition made at ``acquired_at``.

        Only applies while the gate still holds that exact value; returns
        whether anything was reverted.
        """

        with connect(self.path) as conn:
            cursor = conn.execute(
                """
                UPDATE cooldown_state
                SET last_dispatched_at = previous_dispatched_at
                WHERE id = 1 AND last_dispatched_at = ?
                """,
                (acquired_at.timestamp(),),
            )
            released = cursor.rowcount == 1
        if released:
            logger.info("Released cooldown window after failed dispatch")
        return released

    def remaining(self, now: datetime, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> float:
        """Seconds until the gate reopens; ``0.0`` when it is open."""

        with connect(self.path) as conn:
            row = conn.execute(
                "SELECT last_dispatched_at FROM cooldown_state WHERE id = 1"
            ).fetchone()
        if row is None:
            raise StorageError("Cooldown state row is missing.")
        elapsed = now.timestamp() - row["last_dispatched_at"]
        return max(0.0, window_seconds - elapsed)

    def last_dispatched_at(self) -> float:
        with connect(self.path) as conn:
            row = conn.execute(
                "SELECT last_dispatched_at FROM cooldown_state WHERE id = 1"
            ).fetchone()
        if row is None:
            raise StorageError("Cooldown state row is missing.")
        return float(row["last_dispatched_at"])

    def reset(self) -> None:
        with connect(self.path) as conn:
            conn.execute(
                """
                UPDATE cooldown_state
                SET last_dispatched_at = 0, previous_dispatched_at = 0
                WHERE id = 1
                """
            )
        logger.warning("Cooldown state reset")


@lru_cache
def build_default_gate(path: Optional[str] = None) -> CooldownGate:
    settings = get_settings()
    gate_path = settings.database_path if path is None else path
    return CooldownGate(path=Path(gate_path))

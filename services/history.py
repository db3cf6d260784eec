"""Read path for past alerts."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from app.schemas import AlertRecord
from datastore.alerts_table import AlertsTable, build_default_table


class HistoryService:
    """The only read access to stored alerts offered to clients."""

    def __init__(self, table: AlertsTable) -> None:
        self.table = table

    def list(self, limit: Optional[int] = None) -> list[AlertRecord]:
        return self.table.list(limit)


@lru_cache
def build_default_history() -> HistoryService:
    return HistoryService(table=build_default_table())

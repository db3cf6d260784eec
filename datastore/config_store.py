"""Persistence for the singleton notification configuration.

The payload is stored as versioned JSON. Older payload shapes are upgraded
when loaded, one version step at a time.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from app.schemas import NotificationConfig
from datastore.sqlite import connect, ensure_schema
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)

CONFIG_VERSION = 2


def _migrate_v1(payload: Dict[str, Any]) -> Dict[str, Any]:
    # v1 kept the sender under ``from_email``.
    return {
        "sender": payload.get("from_email") or payload.get("fromEmail") or "",
        "recipients": list(payload.get("recipients") or []),
    }


_MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1,
}


def migrate_payload(version: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade ``payload`` from ``version`` to ``CONFIG_VERSION``."""

    if version > CONFIG_VERSION:
        raise StorageError(
            f"Notification config version {version} is newer than supported ({CONFIG_VERSION})."
        )
    while version < CONFIG_VERSION:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise StorageError(f"No migration from notification config version {version}.")
        payload = step(payload)
        version += 1
    return payload


class NotificationConfigStore:

    def __init__(self, path: Path) -> None:
        self.path = path
        ensure_schema(path)

    def load(self) -> Optional[NotificationConfig]:
        """Return the stored config, or ``None`` when absent or unusable."""

        with connect(self.path) as conn:
            row = conn.execute(
                "SELECT version, payload FROM notification_config WHERE id = 1"
            ).fetchone()
        if row is None:
            return None

        try:
            raw = json.loads(row["payload"])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Stored notification config is not valid JSON: {exc}") from exc

        payload = migrate_payload(int(row["version"]), raw)
        try:
            return NotificationConfig.model_validate(payload)
        except PydanticValidationError:
            logger.warning("Stored notification config is incomplete; treating as missing")
            return None

    def save(self, config: NotificationConfig) -> None:
        payload = json.dumps(config.model_dump(mode="json"), sort_keys=True)
        with connect(self.path) as conn:
            conn.execute(
                """
                INSERT INTO notification_config (id, version, payload)
                VALUES (1, ?, ?)
                ON CONFLICT (id) DO UPDATE SET version = excluded.version,
                                               payload = excluded.payload
                """,
                (CONFIG_VERSION, payload),
            )
        logger.info(
            "Notification config replaced",
            extra={"recipient_count": len(config.recipients)},
        )

    def has_config(self) -> bool:
        return self.load() is not None


@lru_cache
def build_default_config_store(path: Optional[str] = None) -> NotificationConfigStore:
    settings = get_settings()
    store_path = settings.database_path if path is None else path
    return NotificationConfigStore(path=Path(store_path))

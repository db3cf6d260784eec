"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Severity(str, Enum):
    """Classification of a threshold breach."""

    warning = "WARNING"
    critical = "CRITICAL"


class IngestionState(str, Enum):
    """Terminal states of the ingestion pipeline."""

    no_breach = "NO_BREACH"
    email_disabled = "EMAIL_DISABLED"
    config_missing = "CONFIG_MISSING"
    throttled = "THROTTLED"
    dispatched = "DISPATCHED"
    dispatch_failed = "DISPATCH_FAILED"


@dataclass(slots=True)
class SensorReading:
    """A single reading submitted by the reading source."""

    reading_id: str
    temperature: float
    humidity: float
    pressure: float
    observed_at: Optional[datetime] = None
    notify: bool = False


@dataclass(slots=True)
class Evaluation:
    """Result of checking a reading against the alert thresholds."""

    triggers: List[str] = field(default_factory=list)
    severity: Optional[Severity] = None

    @property
    def breached(self) -> bool:
        return bool(self.triggers)

    @property
    def message(self) -> str:
        return " | ".join(self.triggers)

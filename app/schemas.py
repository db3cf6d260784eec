"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.records import Severity

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    """Shape check only; deliverability is the transport's concern."""

    return bool(_EMAIL_PATTERN.match(value.strip()))


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReadingIn(BaseModel):
    """Reading submitted by the reading source."""

    reading_id: str = Field(..., min_length=1, description="Caller-supplied, stable across retries.")
    temperature: float = Field(..., allow_inf_nan=False)
    humidity: float = Field(..., allow_inf_nan=False)
    pressure: float = Field(..., allow_inf_nan=False)
    observed_at: Optional[datetime] = Field(
        default=None, description="When the reading was taken (ISO-8601)."
    )
    notify: bool = Field(default=False, description="Whether the source requests an e-mail.")

    @field_validator("reading_id", mode="before")
    @classmethod
    def _accept_numeric_reading_id(cls, value):
        # Sources commonly use a millisecond timestamp as the id.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("reading_id")
    @classmethod
    def _strip_reading_id(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate:
            raise ValueError("reading_id must not be blank")
        return candidate


class AlertRecord(BaseModel):
    """A stored threshold breach. Immutable once written."""

    id: Optional[int] = Field(default=None, description="Storage-assigned, monotonic.")
    reading_id: str
    created_at: datetime
    severity: Severity
    temperature: float
    humidity: float
    pressure: float
    message: str

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return to_utc(value)


class NotificationConfig(BaseModel):
    """Sender and recipients used for every dispatch."""

    sender: str
    recipients: List[str] = Field(..., min_length=1)

    @field_validator("sender")
    @classmethod
    def _validate_sender(cls, value: str) -> str:
        candidate = value.strip()
        if not is_valid_email(candidate):
            raise ValueError("Invalid sender email")
        return candidate

    @field_validator("recipients")
    @classmethod
    def _validate_recipients(cls, value: List[str]) -> List[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("At least one recipient is required")
        for recipient in cleaned:
            if not is_valid_email(recipient):
                raise ValueError(f"Invalid recipient email: {recipient}")
        return cleaned


class ConfigStatus(BaseModel):
    has_config: bool


class IngestResponse(BaseModel):
    """Outcome of a single ingestion request."""

    stored: bool
    sent: bool
    severity: Optional[Severity] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    recipients: Optional[List[str]] = None
    delivery_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(
        default=None, description="Machine-readable failure code reported by the e-mail transport."
    )
    cooldown_remaining_ms: Optional[int] = Field(
        default=None, description="Milliseconds until notifications are allowed again."
    )


class AlertHistory(BaseModel):
    alerts: List[AlertRecord] = Field(default_factory=list)


class ResetResult(BaseModel):
    history_cleared: bool
    cooldown_reset: bool

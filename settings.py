from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_DB_PATH_ENV = "ALERTS_DB_PATH"
_COOLDOWN_ENV = "ALERT_COOLDOWN_SECONDS"
_MAX_ATTEMPTS_ENV = "DISPATCH_MAX_ATTEMPTS"
_EMAIL_API_URL_ENV = "EMAIL_API_URL"
_EMAIL_API_KEY_ENV = "EMAIL_API_KEY"
_EMAIL_FROM_ENV = "EMAIL_FROM_ADDRESS"
_EMAIL_TIMEOUT_ENV = "EMAIL_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_CORS_ORIGINS_ENV = "CORS_ALLOWED_ORIGINS"

_DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)


@dataclass(frozen=True)
class Settings:
    database_path: str
    cooldown_seconds: float
    dispatch_max_attempts: int
    email_api_url: str
    email_api_key: Optional[str]
    email_from_address: Optional[str]
    email_timeout_seconds: float
    log_level: str
    cors_allowed_origins: Tuple[str, ...]


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_csv_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_path=_read_str_env(_DB_PATH_ENV, "./tmp/alerts.db"),
        cooldown_seconds=_read_positive_float(_COOLDOWN_ENV, 300.0),
        dispatch_max_attempts=_read_positive_int(_MAX_ATTEMPTS_ENV, 3),
        email_api_url=_read_str_env(_EMAIL_API_URL_ENV, "https://api.resend.com/emails"),
        email_api_key=_read_optional_env(_EMAIL_API_KEY_ENV, None),
        email_from_address=_read_optional_env(_EMAIL_FROM_ENV, None),
        email_timeout_seconds=_read_positive_float(_EMAIL_TIMEOUT_ENV, 10.0),
        log_level=_read_log_level("INFO"),
        cors_allowed_origins=_read_csv_env(_CORS_ORIGINS_ENV, _DEFAULT_CORS_ORIGINS),
    )

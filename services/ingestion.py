"""Per-reading orchestration: evaluate, store, gate and notify."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, List, Optional

from starlette.concurrency import run_in_threadpool

from app.schemas import AlertRecord, to_utc
from datastore.alerts_table import AlertsTable, build_default_table
from datastore.config_store import NotificationConfigStore, build_default_config_store
from datastore.cooldown_gate import CooldownGate, build_default_gate
from models.records import Evaluation, IngestionState, SensorReading, Severity
from services.dispatcher import NotificationDispatcher, build_default_dispatcher
from services.errors import AlertPipelineError, DispatchError, ResetIncompleteError, ValidationError
from services.evaluator import ThresholdEvaluator, format_number
from settings import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

REASON_NO_BREACH = "No threshold breached"
REASON_EMAIL_DISABLED = "Email disabled"
REASON_CONFIG_MISSING = "Notification config not set"
REASON_THROTTLED = "Cooldown active"
REASON_DISPATCH_FAILED = "Dispatch failed"

ERROR_CODE_DISPATCH_FAILED = "DISPATCH_FAILED"
ERROR_CODE_INVALID_ADDRESS = "INVALID_ADDRESS"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionOutcome:
    """Terminal state of one ingestion plus the response fields it implies."""

    state: IngestionState
    stored: bool
    sent: bool
    created: bool = False
    severity: Optional[Severity] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    recipients: Optional[List[str]] = None
    delivery_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    cooldown_remaining_ms: Optional[int] = None


class IngestionService:
    """Composes evaluator, store, config, cooldown gate and dispatcher."""

    def __init__(
        self,
        table: AlertsTable,
        gate: CooldownGate,
        config_store: NotificationConfigStore,
        dispatcher: NotificationDispatcher,
        evaluator: Optional[ThresholdEvaluator] = None,
        cooldown_seconds: float = 300.0,
        clock: Clock = utc_now,
    ) -> None:
        self.table = table
        self.gate = gate
        self.config_store = config_store
        self.dispatcher = dispatcher
        self.evaluator = evaluator or ThresholdEvaluator()
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

    async def ingest(self, reading: SensorReading) -> IngestionOutcome:
        """Run one reading through the pipeline.

        ``ValidationError`` and ``StorageError`` propagate; every other
        terminal state, including a failed dispatch, is returned as an
        outcome. A stored alert is never rolled back.
        """

        self._validate(reading)

        evaluation = self.evaluator.evaluate(
            reading.temperature, reading.humidity, reading.pressure
        )
        if not evaluation.breached:
            return self._finish(
                reading,
                IngestionOutcome(
                    state=IngestionState.no_breach,
                    stored=False,
                    sent=False,
                    reason=REASON_NO_BREACH,
                ),
            )

        now = self.clock()
        record = AlertRecord(
            reading_id=reading.reading_id,
            created_at=reading.observed_at or now,
            severity=evaluation.severity,
            temperature=reading.temperature,
            humidity=reading.humidity,
            pressure=reading.pressure,
            message=evaluation.message,
        )
        result = await run_in_threadpool(self.table.insert_if_absent, record)
        stored = result.record

        def stored_outcome(state: IngestionState, **fields) -> IngestionOutcome:
            return IngestionOutcome(
                state=state,
                stored=True,
                sent=fields.pop("sent", False),
                created=result.created,
                severity=stored.severity,
                created_at=stored.created_at,
                **fields,
            )

        if not reading.notify:
            return self._finish(
                reading, stored_outcome(IngestionState.email_disabled, reason=REASON_EMAIL_DISABLED)
            )

        config = await run_in_threadpool(self.config_store.load)
        if config is None:
            return self._finish(
                reading, stored_outcome(IngestionState.config_missing, reason=REASON_CONFIG_MISSING)
            )

        acquired = await self._acquire_cooldown(now)
        if not acquired:
            remaining = await run_in_threadpool(self.gate.remaining, now, self.cooldown_seconds)
            return self._finish(
                reading,
                stored_outcome(
                    IngestionState.throttled,
                    reason=REASON_THROTTLED,
                    cooldown_remaining_ms=int(remaining * 1000),
                ),
            )

        subject, body = build_notification(stored, evaluation)
        try:
            receipt = await self.dispatcher.dispatch(
                sender=config.sender,
                recipients=config.recipients,
                subject=subject,
                body=body,
            )
        except (DispatchError, ValidationError) as exc:
            error = str(exc)
            release_error = await self._release_cooldown(now)
            if release_error is not None:
                error = f"{error}; cooldown not released: {release_error}"
            return self._finish(
                reading,
                stored_outcome(
                    IngestionState.dispatch_failed,
                    reason=REASON_DISPATCH_FAILED,
                    error=error,
                    error_code=dispatch_error_code(exc),
                ),
            )
        except asyncio.CancelledError:
            await self._release_cooldown(now)
            raise

        return self._finish(
            reading,
            stored_outcome(
                IngestionState.dispatched,
                sent=True,
                recipients=list(config.recipients),
                delivery_id=receipt.delivery_id,
            ),
        )

    async def _acquire_cooldown(self, now: datetime) -> bool:
        acquire = asyncio.ensure_future(
            run_in_threadpool(self.gate.try_acquire, now, self.cooldown_seconds)
        )
        try:
            return await asyncio.shield(acquire)
        except asyncio.CancelledError:
            # The worker thread may still commit the claim after we are cancelled.
            try:
                acquired = await asyncio.shield(acquire)
            except AlertPipelineError as exc:
                logger.error("Cooldown acquisition failed during cancellation", extra={"error": str(exc)})
                acquired = False
            if acquired:
                await self._release_cooldown(now)
            raise

    async def _release_cooldown(self, now: datetime) -> Optional[str]:
        """Hand a reserved window back; returns the error text if that failed."""

        try:
            await asyncio.shield(run_in_threadpool(self.gate.release, now))
        except AlertPipelineError as exc:
            logger.error("Cooldown release failed; window stays consumed", extra={"error": str(exc)})
            return str(exc)
        return None

    def reset(self) -> None:
        """Clear alert history and the cooldown state.

        Both steps are always attempted; ``ResetIncompleteError`` reports
        which of them did not complete.
        """

        errors: List[str] = []
        history_cleared = cooldown_reset = False
        try:
            self.table.clear()
            history_cleared = True
        except AlertPipelineError as exc:
            errors.append(f"history: {exc}")
        try:
            self.gate.reset()
            cooldown_reset = True
        except AlertPipelineError as exc:
            errors.append(f"cooldown: {exc}")

        if errors:
            logger.error(
                "Administrative reset incomplete",
                extra={"error": "; ".join(errors)},
            )
            raise ResetIncompleteError(
                "Reset incomplete: " + "; ".join(errors),
                history_cleared=history_cleared,
                cooldown_reset=cooldown_reset,
            )
        logger.warning("Administrative reset completed")

    @staticmethod
    def _validate(reading: SensorReading) -> None:
        if not isinstance(reading.reading_id, str) or not reading.reading_id.strip():
            raise ValidationError("reading_id is required")
        for name in ("temperature", "humidity", "pressure"):
            value = getattr(reading, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{name} must be numeric")
            if value != value or value in (float("inf"), float("-inf")):
                raise ValidationError(f"{name} must be finite")
        if reading.observed_at is not None:
            reading.observed_at = to_utc(reading.observed_at)

    @staticmethod
    def _finish(reading: SensorReading, outcome: IngestionOutcome) -> IngestionOutcome:
        level = logging.WARNING if outcome.state is IngestionState.dispatch_failed else logging.INFO
        logger.log(
            level,
            "Ingestion finished",
            extra={
                "reading_id": reading.reading_id,
                "state": outcome.state,
                "severity": outcome.severity,
                "reason": outcome.reason,
                "delivery_id": outcome.delivery_id,
                "error": outcome.error,
            },
        )
        return outcome


def dispatch_error_code(exc: AlertPipelineError) -> str:
    if isinstance(exc, ValidationError):
        return ERROR_CODE_INVALID_ADDRESS
    return getattr(exc, "code", None) or ERROR_CODE_DISPATCH_FAILED


def build_notification(record: AlertRecord, evaluation: Evaluation) -> tuple[str, str]:
    """Subject and plain-text body for an alert e-mail."""

    timestamp = record.created_at.isoformat()
    subject = f"[{record.severity.value}] Sensor alert ({timestamp})"
    conditions = "\n".join(f"- {trigger}" for trigger in evaluation.triggers)
    body = (
        "Sensor Alert\n\n"
        f"Severity: {record.severity.value}\n"
        f"Date & Time (UTC): {timestamp}\n\n"
        "Triggered Conditions:\n"
        f"{conditions}\n\n"
        "Current Readings:\n"
        f"Temperature: {format_number(record.temperature)}°C\n"
        f"Humidity: {format_number(record.humidity)}%\n"
        f"Pressure: {format_number(record.pressure)} hPa\n"
    )
    return subject, body


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires the pipeline from settings."""
    settings = get_settings()
    return IngestionService(
        table=build_default_table(),
        gate=build_default_gate(),
        config_store=build_default_config_store(),
        dispatcher=build_default_dispatcher(),
        cooldown_seconds=settings.cooldown_seconds,
    )

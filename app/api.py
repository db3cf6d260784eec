"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.schemas import (
    AlertHistory,
    ConfigStatus,
    IngestResponse,
    NotificationConfig,
    ReadingIn,
    ResetResult,
)
from datastore.alerts_table import DEFAULT_LIST_LIMIT, clamp_limit
from datastore.config_store import NotificationConfigStore, build_default_config_store
from models.records import IngestionState, SensorReading
from services.errors import ResetIncompleteError, StorageError, ValidationError
from services.history import HistoryService, build_default_history
from services.ingestion import IngestionOutcome, IngestionService, build_default_ingestion

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_history() -> HistoryService:
    return build_default_history()


def get_config_store() -> NotificationConfigStore:
    return build_default_config_store()


def _storage_unavailable(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"error": str(exc)},
    )


def _to_response(outcome: IngestionOutcome) -> IngestResponse:
    return IngestResponse(
        stored=outcome.stored,
        sent=outcome.sent,
        severity=outcome.severity,
        reason=outcome.reason,
        created_at=outcome.created_at,
        recipients=outcome.recipients,
        delivery_id=outcome.delivery_id,
        error=outcome.error,
        error_code=outcome.error_code,
        cooldown_remaining_ms=outcome.cooldown_remaining_ms,
    )


@router.post(
    "/alerts/ingest",
    response_model=IngestResponse,
    response_model_exclude_none=True,
    summary="Evaluate a reading, store breaches and notify operators.",
)
async def ingest_reading(
    reading: ReadingIn,
    ingestion: IngestionService = Depends(get_ingestion),
):
    try:
        outcome = await ingestion.ingest(
            SensorReading(
                reading_id=reading.reading_id,
                temperature=reading.temperature,
                humidity=reading.humidity,
                pressure=reading.pressure,
                observed_at=reading.observed_at,
                notify=reading.notify,
            )
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc

    response = _to_response(outcome)
    if outcome.state is IngestionState.dispatch_failed:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=response.model_dump(mode="json", exclude_none=True),
        )
    return response


@router.api_route(
    "/alerts/config",
    methods=["PUT", "POST"],
    response_model=ConfigStatus,
    summary="Replace the notification sender and recipients.",
)
async def set_config(
    config: NotificationConfig,
    store: NotificationConfigStore = Depends(get_config_store),
) -> ConfigStatus:
    try:
        await run_in_threadpool(store.save, config)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return ConfigStatus(has_config=True)


@router.get(
    "/alerts/config",
    response_model=ConfigStatus,
    summary="Report whether a usable notification config exists.",
)
async def get_config(
    store: NotificationConfigStore = Depends(get_config_store),
) -> ConfigStatus:
    try:
        has_config = await run_in_threadpool(store.has_config)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return ConfigStatus(has_config=has_config)


@router.get(
    "/alerts/history",
    response_model=AlertHistory,
    summary="List stored alerts, newest first.",
)
async def list_history(
    limit: Optional[int] = Query(DEFAULT_LIST_LIMIT, description="Clamped to [1, 100]."),
    history: HistoryService = Depends(get_history),
) -> AlertHistory:
    try:
        alerts = await run_in_threadpool(history.list, clamp_limit(limit))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return AlertHistory(alerts=alerts)


@router.post(
    "/alerts/reset",
    response_model=ResetResult,
    summary="Administrative reset: clear alert history and cooldown state.",
)
async def reset_alerts(
    ingestion: IngestionService = Depends(get_ingestion),
) -> ResetResult:
    try:
        await run_in_threadpool(ingestion.reset)
    except ResetIncompleteError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": str(exc),
                "history_cleared": exc.history_cleared,
                "cooldown_reset": exc.cooldown_reset,
            },
        ) from exc
    return ResetResult(history_cleared=True, cooldown_reset=True)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}

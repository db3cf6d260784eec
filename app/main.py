from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from logging_config import configure_logging
from services.dispatcher import build_default_dispatcher
from services.history import build_default_history
from services.ingestion import build_default_ingestion
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    ingestion = build_default_ingestion()
    try:
        yield
    finally:
        transport = ingestion.dispatcher.transport
        aclose = getattr(transport, "aclose", None)
        if aclose is not None:
            await aclose()
        build_default_ingestion.cache_clear()
        build_default_dispatcher.cache_clear()
        build_default_history.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Alert Pipeline",
        description="Threshold alerts for sensor readings with idempotent storage and throttled e-mail.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_settings().cors_allowed_origins),
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(router)
    return app

app = create_app()

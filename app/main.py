from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.mapping_store import build_default_store
from logging_config import configure_logging
from services.mapping_service import build_default_mapping_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_mapping_service()
    try:
        yield
    finally:
        build_default_mapping_service.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Live Payload Mapper",
        description="Mapping configuration service for raw IoT telemetry payloads.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()

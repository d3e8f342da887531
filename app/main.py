from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from app.live import router as live_router
from logging_config import configure_logging
from services.pipeline import build_default_pipeline


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    pipeline = build_default_pipeline()
    try:
        yield
    finally:
        pipeline.shutdown()
        build_default_pipeline.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="GLOF Watch",
        description="Glacier lake outburst flood risk assessment and alerting service.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    app.include_router(live_router)
    return app

app = create_app()

"""Startup and shutdown wiring for the API process.

Everything the request handlers need hangs off app.state: the shared
webhook client, the workflow engine and, when enabled, the in-process
scheduler and the tracer provider.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from crmflow.core.composition import build_engine, create_http_client
from crmflow.core.config import Settings, get_settings
from crmflow.infrastructure.persistence import database
from crmflow.infrastructure.scheduler.runner import SchedulerRunner
from crmflow.shared.telemetry.logging import setup_logging
from crmflow.shared.telemetry.telemetry import EngineTracing

logger = logging.getLogger(__name__)


def _start_tracing(app: FastAPI, settings: Settings) -> EngineTracing | None:
    if not settings.telemetry_enabled:
        return None
    tracing = EngineTracing(settings, component="api").install()
    tracing.instrument_app(app)
    if settings.database_url:
        tracing.instrument_db(database.get_engine())
    return tracing


async def _stop(app: FastAPI) -> None:
    scheduler: SchedulerRunner | None = app.state.scheduler
    if scheduler is not None:
        await scheduler.stop()
    await app.state.http_client.aclose()
    if app.state.tracing is not None:
        app.state.tracing.shutdown()
    await database.dispose_engine()
    logger.info("crmflow stopped")


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine on startup; stop the scheduler before closing its resources."""
    settings = get_settings()
    setup_logging(settings)

    app.state.tracing = _start_tracing(app, settings)
    app.state.http_client = create_http_client(settings)
    app.state.engine = build_engine(settings, app.state.http_client)
    app.state.scheduler = None
    if settings.scheduler_enabled:
        app.state.scheduler = SchedulerRunner(app.state.engine, settings.scheduler_poll_seconds)
        app.state.scheduler.start()
    logger.info(
        "crmflow started (scheduler=%s, tracing=%s)",
        settings.scheduler_enabled,
        settings.telemetry_enabled,
    )
    try:
        yield
    finally:
        await _stop(app)

"""Health check endpoints. Liveness has no dependencies; readiness pings the database."""

from fastapi import APIRouter, Request
from sqlalchemy import text

from crmflow.core.config import get_settings
from crmflow.infrastructure.persistence.database import get_session_factory, is_configured
from crmflow.schemas.health import HealthResponse, ReadinessResponse
from crmflow.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return simple ok status for liveness."""
    return HealthResponse(version=get_settings().app_version)


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Report database reachability and whether the in-process scheduler runs."""
    scheduler = getattr(request.app.state, "scheduler", None)
    running = bool(scheduler is not None and scheduler.running)
    if not is_configured():
        return ReadinessResponse(status="ok", database="not_configured", scheduler=running)
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness check: database unavailable")
        return ReadinessResponse(status="degraded", database="unavailable", scheduler=running)
    return ReadinessResponse(status="ok", database="ok", scheduler=running)

"""Liveness and readiness bodies."""

from typing import Literal

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    version: str


class ReadinessResponse(BaseModel):
    """status is degraded when the database is configured but unreachable."""

    status: Literal["ok", "degraded"]
    database: Literal["ok", "not_configured", "unavailable"]
    scheduler: bool

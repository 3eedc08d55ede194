"""API v1 router aggregation.

Includes all endpoint modules with consistent prefix and tags.
"""

from fastapi import APIRouter

from crmflow.api.v1.endpoints import execution_logs, health, scheduler, triggers

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(triggers.router, prefix="/triggers", tags=["triggers"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
api_router.include_router(
    execution_logs.router, prefix="/execution-logs", tags=["execution-logs"]
)

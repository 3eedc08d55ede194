"""Presentation-layer dependency injection.

Routes depend only on these providers, not on infrastructure directly.
The engine is built once in the lifespan and read from app.state.
"""

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.application.interfaces.repositories import IExecutionLogRepository
from crmflow.application.interfaces.services import IWorkflowEngine
from crmflow.core import tenant_context
from crmflow.infrastructure.persistence.database import get_db
from crmflow.infrastructure.persistence.repositories.execution_log_repo import (
    ExecutionLogRepository,
)


def get_tenant_id() -> str:
    """Tenant from the X-Tenant-ID header (set by TenantContextMiddleware).

    Raises:
        HTTPException: 400 when the header is missing or malformed.
    """
    tenant_id = tenant_context.get_tenant_id()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="Missing or invalid tenant header")
    return tenant_id


def get_engine(request: Request) -> IWorkflowEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Workflow engine not initialized")
    return engine


async def get_execution_log_repo(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AsyncIterator[IExecutionLogRepository]:
    yield ExecutionLogRepository(db)

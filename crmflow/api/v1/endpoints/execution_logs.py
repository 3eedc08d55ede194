"""Execution log API: read-only audit trail of workflow runs."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from crmflow.api.v1.dependencies import get_execution_log_repo, get_tenant_id
from crmflow.application.interfaces.repositories import IExecutionLogRepository
from crmflow.domain.enums import ExecutionStatus
from crmflow.schemas.execution_log import ExecutionLogEntryResponse, ExecutionLogListResponse

router = APIRouter()


async def _list(
    repo: IExecutionLogRepository,
    tenant_id: str,
    skip: int,
    limit: int,
    **filters,
) -> ExecutionLogListResponse:
    items = await repo.list(tenant_id, skip=skip, limit=limit, **filters)
    total = await repo.count(tenant_id, **filters)
    return ExecutionLogListResponse(
        items=[ExecutionLogEntryResponse.model_validate(e) for e in items],
        skip=skip,
        limit=limit,
        total=total,
    )


@router.get("", response_model=ExecutionLogListResponse)
async def list_execution_logs(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    repo: Annotated[IExecutionLogRepository, Depends(get_execution_log_repo)],
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    workflow_id: str | None = Query(None, description="Filter by workflow id"),
    entity_id: str | None = Query(None, description="Filter by entity id"),
    status: ExecutionStatus | None = Query(None, description="success, failed or skipped"),
    from_timestamp: datetime | None = Query(None, description="From (inclusive) ISO8601"),
    to_timestamp: datetime | None = Query(None, description="To (inclusive) ISO8601"),
) -> ExecutionLogListResponse:
    """List execution log entries for the tenant (newest first, paginated)."""
    return await _list(
        repo,
        tenant_id,
        skip,
        limit,
        workflow_id=workflow_id,
        entity_id=entity_id,
        status=status,
        from_timestamp=from_timestamp,
        to_timestamp=to_timestamp,
    )


@router.get("/workflows/{workflow_id}", response_model=ExecutionLogListResponse)
async def list_workflow_execution_logs(
    workflow_id: str,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    repo: Annotated[IExecutionLogRepository, Depends(get_execution_log_repo)],
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status: ExecutionStatus | None = Query(None),
) -> ExecutionLogListResponse:
    """Execution history of one workflow."""
    return await _list(repo, tenant_id, skip, limit, workflow_id=workflow_id, status=status)

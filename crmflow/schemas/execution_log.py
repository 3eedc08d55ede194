"""Request/response schemas for the execution log API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from crmflow.domain.enums import ExecutionStatus


class ExecutionLogEntryResponse(BaseModel):
    """Single execution log entry (read)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    workflow_id: str
    rule_id: str | None = None
    action_id: str | None = None
    entity_type: str
    entity_id: str
    trigger_instance_id: str
    status: ExecutionStatus
    error_message: str | None = None
    details: dict[str, Any] = {}
    attempt: int = 1
    duration_ms: int = 0
    executed_at: datetime


class ExecutionLogListResponse(BaseModel):
    """Paginated list of execution log entries."""

    items: list[ExecutionLogEntryResponse]
    skip: int
    limit: int
    total: int

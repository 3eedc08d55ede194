"""Task payloads passed between the create_task/create_activity handlers and the record store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from crmflow.domain.enums import ActivityType


@dataclass(frozen=True)
class TaskCreate:
    tenant_id: str
    entity_type: str
    entity_id: str
    subject: str
    description: str | None
    assigned_to_user_id: str | None
    due_at: datetime | None
    workflow_id: str | None = None
    activity_type: ActivityType = ActivityType.TASK


@dataclass(frozen=True)
class TaskResult:
    """A stored task, as reported in the create_task log entry."""

    id: str
    tenant_id: str
    entity_type: str
    entity_id: str
    subject: str
    description: str | None
    assigned_to_user_id: str | None
    due_at: datetime | None
    status: str
    created_at: datetime
    activity_type: ActivityType = ActivityType.TASK

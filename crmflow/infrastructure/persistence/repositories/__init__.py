"""SQL implementations of the application repository protocols."""

from crmflow.infrastructure.persistence.repositories.execution_log_repo import (
    ExecutionLogRepository,
)
from crmflow.infrastructure.persistence.repositories.record_store import SqlRecordStore
from crmflow.infrastructure.persistence.repositories.scheduled_execution_repo import (
    ScheduledExecutionRepository,
)
from crmflow.infrastructure.persistence.repositories.task_repo import TaskRepository
from crmflow.infrastructure.persistence.repositories.workflow_repo import WorkflowRepository

__all__ = [
    "ExecutionLogRepository",
    "ScheduledExecutionRepository",
    "SqlRecordStore",
    "TaskRepository",
    "WorkflowRepository",
]

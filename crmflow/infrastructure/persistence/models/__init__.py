"""ORM models. Importing this package registers every table on Base.metadata."""

from crmflow.infrastructure.persistence.models.execution import (
    WorkflowExecutionClaim,
    WorkflowExecutionLog,
    WorkflowScheduledExecution,
)
from crmflow.infrastructure.persistence.models.task import Task
from crmflow.infrastructure.persistence.models.workflow import (
    Workflow,
    WorkflowAction,
    WorkflowRule,
)

__all__ = [
    "Task",
    "Workflow",
    "WorkflowAction",
    "WorkflowExecutionClaim",
    "WorkflowExecutionLog",
    "WorkflowRule",
    "WorkflowScheduledExecution",
]

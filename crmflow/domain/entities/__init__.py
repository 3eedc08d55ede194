"""Domain entities and aggregates.

Pure domain models; no ORM or persistence concerns.
"""

from crmflow.domain.entities.execution import (
    ExecutionLogEntry,
    IdempotencyKey,
    ScheduledExecution,
)
from crmflow.domain.entities.workflow import (
    ActionChain,
    ActionEntity,
    RuleEntity,
    WorkflowEntity,
)

__all__ = [
    "ActionChain",
    "ActionEntity",
    "ExecutionLogEntry",
    "IdempotencyKey",
    "RuleEntity",
    "ScheduledExecution",
    "WorkflowEntity",
]

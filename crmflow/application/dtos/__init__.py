"""Application DTOs (no ORM dependency)."""

from crmflow.application.dtos.execution import ActionOutcome, ExecutionRequest
from crmflow.application.dtos.matching import (
    ConditionProof,
    MatchedRule,
    MatchResult,
    RuleFailure,
)
from crmflow.application.dtos.notification import InAppNotification
from crmflow.application.dtos.task import TaskCreate, TaskResult
from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate

__all__ = [
    "ActionCreate",
    "ActionOutcome",
    "ConditionProof",
    "ExecutionRequest",
    "InAppNotification",
    "MatchResult",
    "MatchedRule",
    "RuleCreate",
    "RuleFailure",
    "TaskCreate",
    "TaskResult",
    "WorkflowCreate",
]

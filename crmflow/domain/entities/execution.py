"""Execution records: log entries, deferred executions and idempotency keys."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crmflow.domain.enums import ExecutionStatus, ScheduledExecutionStatus


@dataclass(frozen=True)
class IdempotencyKey:
    """(rule, action, entity, trigger instance): at most one Success per key."""

    rule_id: str
    action_id: str
    entity_id: str
    trigger_instance_id: str


@dataclass(frozen=True)
class ExecutionLogEntry:
    """Append-only audit record written by the action executor.

    rule_id and action_id are None for workflow-level entries.
    """

    id: str
    tenant_id: str
    workflow_id: str
    rule_id: str | None
    action_id: str | None
    entity_type: str
    entity_id: str
    trigger_instance_id: str
    status: ExecutionStatus
    executed_at: datetime
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    attempt: int = 1
    duration_ms: int = 0


@dataclass
class ScheduledExecution:
    """Durable deferred action; the snapshot is frozen at trigger time."""

    id: str
    tenant_id: str
    workflow_id: str
    rule_id: str
    action_id: str
    entity_type: str
    entity_id: str
    trigger_instance_id: str
    snapshot: Mapping[str, Any]
    execute_at: datetime
    attempt: int = 1
    status: ScheduledExecutionStatus = ScheduledExecutionStatus.PENDING
    last_error: str | None = None

    @property
    def idempotency_key(self) -> IdempotencyKey:
        return IdempotencyKey(
            rule_id=self.rule_id,
            action_id=self.action_id,
            entity_id=self.entity_id,
            trigger_instance_id=self.trigger_instance_id,
        )

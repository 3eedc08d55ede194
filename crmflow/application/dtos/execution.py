"""DTOs for action execution requests and handler outcomes."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crmflow.domain.entities.execution import IdempotencyKey
from crmflow.domain.entities.workflow import ActionEntity, RuleEntity, WorkflowEntity


@dataclass(frozen=True)
class ExecutionRequest:
    """One action to run (or defer) for one entity and trigger instance."""

    tenant_id: str
    workflow: WorkflowEntity
    rule: RuleEntity
    action: ActionEntity
    entity_type: str
    entity_id: str
    snapshot: Mapping[str, Any]
    trigger_instance_id: str
    triggered_at: datetime
    attempt: int = 1
    match_details: dict[str, Any] = field(default_factory=dict)

    @property
    def idempotency_key(self) -> IdempotencyKey:
        return IdempotencyKey(
            rule_id=self.rule.id,
            action_id=self.action.id,
            entity_id=self.entity_id,
            trigger_instance_id=self.trigger_instance_id,
        )


@dataclass(frozen=True)
class ActionOutcome:
    """What a handler did; stored in the Success entry's details."""

    message: str
    details: dict[str, Any] = field(default_factory=dict)

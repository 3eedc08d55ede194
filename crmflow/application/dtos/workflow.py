"""DTOs for saving workflow definitions (validated before persistence)."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class WorkflowCreate:
    tenant_id: str
    name: str
    entity_type: str
    trigger_type: str
    description: str | None = None
    schedule_expression: str | None = None
    trigger_fields: list[str] | None = None
    is_active: bool = True
    execution_order: int = 0
    stop_on_match: bool = False


@dataclass(frozen=True)
class RuleCreate:
    workflow_id: str
    name: str
    conditions: dict[str, Any] | list[Any] | None = None
    condition_logic: str = "and"
    order: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class ActionCreate:
    rule_id: str
    action_type: str
    action_config: dict[str, Any] = field(default_factory=dict)
    delay_minutes: int = 0
    order: int = 0
    is_active: bool = True

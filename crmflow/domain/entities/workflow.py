"""Workflow domain entities: Workflow, its Rules and their Actions.

Definitions are plain dataclasses; condition and action payloads are parsed
once on construction. A payload that fails to parse is kept as ``parse_error``
so the matcher and executor can isolate it to the one rule or action.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crmflow.domain.enums import ActionType, ConditionLogic, TriggerType
from crmflow.domain.exceptions import StateChangedError, ValidationException
from crmflow.domain.value_objects.action_configs import ActionConfig, parse_action_config
from crmflow.domain.value_objects.conditions import ConditionSet, parse_condition_set


@dataclass
class ActionEntity:
    """One side-effecting step of a rule, immediate or delayed."""

    id: str
    rule_id: str
    action_type: str
    action_config: dict[str, Any] | str | None
    delay_minutes: int = 0
    order: int = 0
    is_active: bool = True
    is_deleted: bool = False
    config: ActionConfig | None = field(default=None, init=False, repr=False)
    parse_error: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        try:
            self.config = parse_action_config(self.action_type, self.action_config)
        except ValidationException as e:
            self.parse_error = e.message

    @property
    def kind(self) -> ActionType | None:
        """Parsed action type, or None when the stored type is unknown."""
        try:
            return ActionType.parse(self.action_type)
        except ValueError:
            return None

    @property
    def is_deferred(self) -> bool:
        return self.delay_minutes > 0


@dataclass
class RuleEntity:
    """A named condition set inside a workflow; owns ordered actions."""

    id: str
    workflow_id: str
    name: str
    conditions: dict[str, Any] | list[Any] | str | None
    condition_logic: str = ConditionLogic.AND.value
    order: int = 0
    is_active: bool = True
    is_deleted: bool = False
    actions: list[ActionEntity] = field(default_factory=list)
    condition_set: ConditionSet | None = field(default=None, init=False, repr=False)
    parse_error: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        try:
            self.condition_set = parse_condition_set(self.conditions, self.condition_logic)
        except ValidationException as e:
            self.parse_error = e.message

    def ordered_actions(self) -> list[ActionEntity]:
        """Active, non-deleted actions ascending by (order, id)."""
        return sorted(
            (a for a in self.actions if a.is_active and not a.is_deleted),
            key=lambda a: (a.order, a.id),
        )


@dataclass
class WorkflowEntity:
    """Domain entity for a workflow definition (trigger + ordered rules)."""

    id: str
    tenant_id: str
    name: str
    entity_type: str
    trigger_type: TriggerType
    description: str | None = None
    schedule_expression: str | None = None
    trigger_fields: list[str] | None = None
    is_active: bool = True
    execution_order: int = 0
    stop_on_match: bool = False
    is_deleted: bool = False
    rules: list[RuleEntity] = field(default_factory=list)

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        """Return whether this workflow belongs to the given tenant."""
        return self.tenant_id == tenant_id

    def ordered_rules(self) -> list[RuleEntity]:
        """Active, non-deleted rules ascending by (order, id)."""
        return sorted(
            (r for r in self.rules if r.is_active and not r.is_deleted),
            key=lambda r: (r.order, r.id),
        )

    def monitored_fields_changed(
        self, snapshot: Mapping[str, Any], previous_snapshot: Mapping[str, Any] | None
    ) -> bool:
        """Return whether an update touched one of trigger_fields.

        Always true for non-update triggers, for workflows without
        trigger_fields, and when no previous snapshot was supplied.
        """
        if self.trigger_type is not TriggerType.UPDATE or not self.trigger_fields:
            return True
        if previous_snapshot is None:
            return True
        return any(
            snapshot.get(name) != previous_snapshot.get(name) for name in self.trigger_fields
        )


@dataclass(frozen=True)
class ActionChain:
    """An action together with its owning rule and workflow, for re-validation."""

    workflow: WorkflowEntity
    rule: RuleEntity
    action: ActionEntity

    def ensure_runnable(self) -> None:
        """Raise StateChangedError if any link was deactivated or deleted."""
        for kind, item in (
            ("workflow", self.workflow),
            ("rule", self.rule),
            ("action", self.action),
        ):
            if item.is_deleted:
                raise StateChangedError(kind, item.id, "deleted")
            if not item.is_active:
                raise StateChangedError(kind, item.id)

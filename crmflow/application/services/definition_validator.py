"""Validates workflow definitions at save time.

Unknown action types, malformed action payloads, malformed condition
payloads and invalid cron expressions are rejected here, so the executor
only ever sees definitions that parsed. Each method returns a normalized
copy of its input (canonical enum values, canonical payload JSON).
"""

from __future__ import annotations

from dataclasses import replace

from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate
from crmflow.application.services.cron import parse_cron
from crmflow.domain.enums import ActionType, ConditionLogic, TriggerType
from crmflow.domain.exceptions import ValidationException
from crmflow.domain.value_objects.action_configs import parse_action_config
from crmflow.domain.value_objects.conditions import parse_condition_set


def _require(value: str | None, field: str) -> str:
    if not value or not value.strip():
        raise ValidationException(f"{field} is required", field=field)
    return value.strip()


class WorkflowDefinitionValidator:
    """Checks workflow, rule and action definitions before they are persisted."""

    def validate_workflow(self, data: WorkflowCreate) -> WorkflowCreate:
        """Raise ValidationException if the workflow definition is invalid."""
        name = _require(data.name, "name")
        entity_type = _require(data.entity_type, "entity_type")
        try:
            trigger_type = TriggerType.parse(data.trigger_type)
        except ValueError as e:
            raise ValidationException(str(e), field="trigger_type") from e

        schedule = (data.schedule_expression or "").strip() or None
        if trigger_type is TriggerType.SCHEDULED:
            if schedule is None:
                raise ValidationException(
                    "schedule_expression is required for scheduled workflows",
                    field="schedule_expression",
                )
            try:
                parse_cron(schedule)
            except ValueError as e:
                raise ValidationException(str(e), field="schedule_expression") from e
        elif schedule is not None:
            raise ValidationException(
                "schedule_expression is only allowed for scheduled workflows",
                field="schedule_expression",
            )

        trigger_fields = [f.strip() for f in data.trigger_fields or [] if f and f.strip()]
        if trigger_fields and trigger_type is not TriggerType.UPDATE:
            raise ValidationException(
                "trigger_fields are only allowed for update workflows", field="trigger_fields"
            )
        return replace(
            data,
            name=name,
            entity_type=entity_type,
            trigger_type=trigger_type.value,
            schedule_expression=schedule,
            trigger_fields=trigger_fields or None,
        )

    def validate_rule(self, data: RuleCreate) -> RuleCreate:
        """Raise ValidationException if the rule or its conditions are invalid."""
        name = _require(data.name, "name")
        try:
            logic = ConditionLogic.parse(data.condition_logic)
        except ValueError as e:
            raise ValidationException(str(e), field="condition_logic") from e
        condition_set = parse_condition_set(data.conditions, logic)
        return replace(
            data,
            name=name,
            condition_logic=condition_set.logic.value,
            conditions=condition_set.to_dict(),
        )

    def validate_action(self, data: ActionCreate) -> ActionCreate:
        """Raise ValidationException for unknown action types or malformed payloads."""
        try:
            action_type = ActionType.parse(data.action_type)
        except ValueError as e:
            raise ValidationException(str(e), field="action_type") from e
        if data.delay_minutes < 0:
            raise ValidationException("delay_minutes must be >= 0", field="delay_minutes")
        config = parse_action_config(action_type, data.action_config)
        return replace(
            data,
            action_type=action_type.value,
            action_config=config.model_dump(mode="json", exclude_none=True),
        )

"""Domain value objects: condition sets and typed action payloads."""

from crmflow.domain.value_objects.action_configs import (
    ACTION_CONFIG_MODELS,
    ActionConfig,
    AssignOwnerConfig,
    CreateTaskConfig,
    IncrementCounterConfig,
    InvokeWebhookConfig,
    SendEmailConfig,
    SendNotificationConfig,
    UpdateFieldConfig,
    parse_action_config,
)
from crmflow.domain.value_objects.conditions import (
    ConditionSet,
    FieldCondition,
    parse_condition_set,
)

__all__ = [
    "ACTION_CONFIG_MODELS",
    "ActionConfig",
    "AssignOwnerConfig",
    "ConditionSet",
    "CreateTaskConfig",
    "FieldCondition",
    "IncrementCounterConfig",
    "InvokeWebhookConfig",
    "SendEmailConfig",
    "SendNotificationConfig",
    "UpdateFieldConfig",
    "parse_action_config",
    "parse_condition_set",
]

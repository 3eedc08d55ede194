"""Domain enumerations for the automation engine.

Enums represent the closed value sets of workflow definitions and
execution records. Stored and serialized as their snake_case values.
"""

import re
from enum import Enum

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class _ValuesMixin:
    """Mixin that adds values() and a lenient parse() to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]  # type: ignore[attr-defined]

    @classmethod
    def parse(cls, raw: object):
        """Return the member for raw, accepting 'GreaterThan', 'greater_than' or 'GREATER_THAN'.

        Raises:
            ValueError: raw does not name a member.
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"Invalid {cls.__name__}: {raw!r}")
        normalized = _CAMEL_BOUNDARY.sub("_", raw.strip()).replace("-", "_").lower()
        try:
            return cls(normalized)  # type: ignore[call-arg]
        except ValueError:
            raise ValueError(
                f"Invalid {cls.__name__}: {raw!r}. Must be one of: {', '.join(cls.values())}"
            ) from None


class TriggerType(_ValuesMixin, str, Enum):
    """What fires a workflow: an entity lifecycle event or a schedule tick."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SCHEDULED = "scheduled"


class ConditionLogic(_ValuesMixin, str, Enum):
    """How a rule combines its flat list of field conditions."""

    AND = "and"
    OR = "or"


class ConditionOperator(_ValuesMixin, str, Enum):
    """Field comparison operators supported by the condition evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    CHANGED = "changed"
    CHANGED_TO = "changed_to"
    CHANGED_FROM = "changed_from"


class ActionType(_ValuesMixin, str, Enum):
    """Closed set of action variants; each has one registered handler."""

    SEND_NOTIFICATION = "send_notification"
    SEND_EMAIL = "send_email"
    CREATE_TASK = "create_task"
    CREATE_ACTIVITY = "create_activity"
    UPDATE_FIELD = "update_field"
    ASSIGN_OWNER = "assign_owner"
    INVOKE_WEBHOOK = "invoke_webhook"
    INCREMENT_COUNTER = "increment_counter"


class ActivityType(_ValuesMixin, str, Enum):
    """Kind of follow-up a create_activity action records; create_task always writes task."""

    TASK = "task"
    CALL = "call"
    MEETING = "meeting"
    EMAIL = "email"
    FOLLOW_UP = "follow_up"
    DEMO = "demo"
    OTHER = "other"


# Action types whose transient failures are retried by later scheduler passes.
RETRYABLE_ACTION_TYPES: frozenset[ActionType] = frozenset({
    ActionType.SEND_NOTIFICATION,
    ActionType.SEND_EMAIL,
    ActionType.INVOKE_WEBHOOK,
})


class ExecutionStatus(_ValuesMixin, str, Enum):
    """Terminal status of one execution log entry."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScheduledExecutionStatus(_ValuesMixin, str, Enum):
    """Lifecycle of a durable deferred-action record."""

    PENDING = "pending"
    COMPLETED = "completed"


class TriggerState(_ValuesMixin, str, Enum):
    """Processing state of one trigger instance inside the engine."""

    RECEIVED = "received"
    MATCHING = "matching"
    EXECUTING = "executing"
    COMPLETED = "completed"


class NotificationChannel(_ValuesMixin, str, Enum):
    """Delivery channels a send_notification action may request."""

    IN_APP = "in_app"
    EMAIL = "email"

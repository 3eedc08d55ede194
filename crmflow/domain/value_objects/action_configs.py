"""Typed action payloads, one pydantic model per ActionType.

Payloads are parsed once (when a definition is saved and when it is loaded
for execution); handlers receive the model instance, never raw JSON. Keys are
accepted in snake_case or camelCase (``templateId`` / ``template_id``).
"""

import json
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from crmflow.domain.enums import ActionType, ActivityType, NotificationChannel
from crmflow.domain.exceptions import ValidationException

FIELD_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


class _ActionConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SendNotificationConfig(_ActionConfig):
    """In-app notification. Recipient defaults to the entity owner."""

    template_id: str | None = Field(default=None, min_length=1, max_length=128)
    user_id: str | None = Field(default=None, min_length=1)
    title: str | None = None
    message: str | None = None
    channels: list[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )

    @field_validator("channels", mode="before")
    @classmethod
    def parse_channels(cls, value: Any) -> Any:
        """Accept 'InApp', 'in_app,email' or a list of either."""
        if isinstance(value, str):
            value = [part for part in value.split(",") if part.strip()]
        if isinstance(value, list):
            try:
                return [NotificationChannel.parse(v) for v in value]
            except ValueError as e:
                raise ValueError(str(e)) from None
        return value

    @model_validator(mode="after")
    def require_template_or_title(self) -> "SendNotificationConfig":
        if not self.template_id and not self.title:
            raise ValueError("send_notification requires template_id or title")
        return self


class SendEmailConfig(_ActionConfig):
    to: str = Field(..., min_length=1)
    subject: str | None = None
    body: str = ""
    template_id: str | None = Field(default=None, min_length=1, max_length=128)

    @model_validator(mode="after")
    def require_subject_or_template(self) -> "SendEmailConfig":
        if not self.subject and not self.template_id:
            raise ValueError("send_email requires subject or template_id")
        return self


class CreateTaskConfig(_ActionConfig):
    subject: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    due_in_minutes: int | None = Field(default=None, ge=0)
    assigned_to: str | None = Field(default=None, min_length=1)


class CreateActivityConfig(_ActionConfig):
    """A typed follow-up (call, meeting, demo, ...) linked to the record."""

    type: ActivityType = ActivityType.TASK
    subject: str = Field(default="Workflow Activity", min_length=1, max_length=500)
    description: str | None = None
    due_in_minutes: int | None = Field(default=None, ge=0)
    assigned_to: str | None = Field(default=None, min_length=1)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, value: Any) -> Any:
        """Accept 'FollowUp', 'follow_up' or 'FOLLOW_UP'."""
        try:
            return ActivityType.parse(value)
        except ValueError as e:
            raise ValueError(str(e)) from None


class UpdateFieldConfig(_ActionConfig):
    field: str = Field(..., pattern=FIELD_NAME_PATTERN, max_length=128)
    value: Any = None


class AssignOwnerConfig(_ActionConfig):
    """Owner assignment; field falls back to owner_id / assigned_to_user_id."""

    user_id: str = Field(..., min_length=1)
    field: str | None = Field(default=None, pattern=FIELD_NAME_PATTERN, max_length=128)


class InvokeWebhookConfig(_ActionConfig):
    url: str = Field(..., pattern=r"^https?://", max_length=2048)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    payload: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_method(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("method"), str):
            data = {**data, "method": data["method"].upper()}
        return data


class IncrementCounterConfig(_ActionConfig):
    field: str = Field(..., pattern=FIELD_NAME_PATTERN, max_length=128)
    amount: int = 1

    @model_validator(mode="after")
    def reject_zero(self) -> "IncrementCounterConfig":
        if self.amount == 0:
            raise ValueError("increment_counter amount must not be 0")
        return self


ActionConfig = (
    SendNotificationConfig
    | SendEmailConfig
    | CreateTaskConfig
    | CreateActivityConfig
    | UpdateFieldConfig
    | AssignOwnerConfig
    | InvokeWebhookConfig
    | IncrementCounterConfig
)

ACTION_CONFIG_MODELS: dict[ActionType, type[_ActionConfig]] = {
    ActionType.SEND_NOTIFICATION: SendNotificationConfig,
    ActionType.SEND_EMAIL: SendEmailConfig,
    ActionType.CREATE_TASK: CreateTaskConfig,
    ActionType.CREATE_ACTIVITY: CreateActivityConfig,
    ActionType.UPDATE_FIELD: UpdateFieldConfig,
    ActionType.ASSIGN_OWNER: AssignOwnerConfig,
    ActionType.INVOKE_WEBHOOK: InvokeWebhookConfig,
    ActionType.INCREMENT_COUNTER: IncrementCounterConfig,
}


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_action_config(action_type: ActionType | str, raw: Any) -> ActionConfig:
    """Parse a stored action payload into its typed model.

    Args:
        action_type: Variant name (enum member or any accepted spelling).
        raw: dict, JSON string, or None (treated as {}).

    Raises:
        ValidationException: Unknown action type or payload invalid for the type.
    """
    try:
        kind = ActionType.parse(action_type)
    except ValueError as e:
        raise ValidationException(str(e), field="action_type") from e
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raw = {}
    elif isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationException(
                f"Action config is not valid JSON: {e.msg}", field="action_config"
            ) from e
    if not isinstance(raw, dict):
        raise ValidationException("Action config must be an object", field="action_config")
    model = ACTION_CONFIG_MODELS[kind]
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValidationException(
            f"Invalid {kind.value} config: {_format_errors(e)}", field="action_config"
        ) from e

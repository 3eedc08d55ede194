"""Action handlers: one coroutine per ActionType, resolved from a closed registry.

Handlers receive an ActionContext and the already-parsed config model and
return an ActionOutcome. They raise TransientActionError for failures worth
retrying (network, 5xx) and PermanentActionError for everything that will
not succeed on a second attempt. Handlers never write execution log entries.
"""

import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

import httpx

from crmflow.application.dtos.execution import ActionOutcome
from crmflow.application.dtos.notification import InAppNotification
from crmflow.application.dtos.task import TaskCreate
from crmflow.application.interfaces.repositories import IRecordStore
from crmflow.application.interfaces.services import INotificationService, ITemplateRenderer
from crmflow.application.services.condition_evaluator import MISSING, resolve_field
from crmflow.domain.enums import ActionType, ActivityType
from crmflow.domain.exceptions import PermanentActionError, TransientActionError
from crmflow.domain.value_objects.action_configs import (
    AssignOwnerConfig,
    CreateActivityConfig,
    CreateTaskConfig,
    IncrementCounterConfig,
    InvokeWebhookConfig,
    SendEmailConfig,
    SendNotificationConfig,
    UpdateFieldConfig,
)
from crmflow.shared.utils.serialization import to_jsonable

_PLACEHOLDER = re.compile(r"^\{\{\s*([A-Za-z_][\w.]*)\s*\}\}$")
# Snapshot fields tried, in order, when no explicit recipient or owner field is configured.
OWNER_FIELDS = ("owner_id", "assigned_to_user_id")


@dataclass(frozen=True)
class ActionContext:
    """Everything a handler may use; the snapshot is read-only."""

    tenant_id: str
    workflow_id: str
    workflow_name: str
    rule_id: str
    action_id: str
    entity_type: str
    entity_id: str
    trigger_instance_id: str
    snapshot: Mapping[str, Any]
    now: datetime
    records: IRecordStore
    notifications: INotificationService
    renderer: ITemplateRenderer
    http_client: httpx.AsyncClient

    def template_context(self) -> dict[str, Any]:
        return {
            **self.snapshot,
            "record": dict(self.snapshot),
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "workflow_name": self.workflow_name,
            "trigger_instance_id": self.trigger_instance_id,
        }


ActionHandler = Callable[[ActionContext, Any], Awaitable[ActionOutcome]]


def resolve_placeholder(value: Any, snapshot: Mapping[str, Any]) -> Any:
    """Return snapshot[field] for an exact '{{field}}' string, else value unchanged.

    Raises:
        PermanentActionError: The placeholder names a field the snapshot lacks.
    """
    if not isinstance(value, str):
        return value
    match = _PLACEHOLDER.match(value.strip())
    if not match:
        return value
    resolved = resolve_field(snapshot, match.group(1))
    if resolved is MISSING or resolved is None:
        raise PermanentActionError(
            f"Placeholder {value} has no value in the record",
            {"placeholder": match.group(1)},
        )
    return resolved


def _default_owner(snapshot: Mapping[str, Any]) -> str | None:
    for name in OWNER_FIELDS:
        if snapshot.get(name):
            return str(snapshot[name])
    return None


def _render(ctx: ActionContext, source: str) -> str:
    try:
        return ctx.renderer.render_string(source, ctx.template_context())
    except ValueError as e:
        raise PermanentActionError(str(e)) from e


def _render_template(ctx: ActionContext, template_id: str) -> tuple[str, str]:
    try:
        return ctx.renderer.render(template_id, ctx.template_context())
    except KeyError as e:
        raise PermanentActionError(f"Unknown notification template: {template_id}") from e


async def send_notification(ctx: ActionContext, config: SendNotificationConfig) -> ActionOutcome:
    if config.user_id:
        recipient = str(resolve_placeholder(config.user_id, ctx.snapshot))
    else:
        recipient = _default_owner(ctx.snapshot)
    if not recipient:
        raise PermanentActionError("No recipient for notification")

    if config.template_id:
        title, message = _render_template(ctx, config.template_id)
        if config.title:
            title = _render(ctx, config.title)
    else:
        title, message = _render(ctx, config.title or ""), ""
    if config.message:
        message = _render(ctx, config.message)

    notification = InAppNotification(
        user_id=recipient,
        title=title,
        message=message,
        entity_type=ctx.entity_type,
        entity_id=ctx.entity_id,
        workflow_id=ctx.workflow_id,
        channels=tuple(c.value for c in config.channels),
    )
    try:
        await ctx.notifications.notify_user(ctx.tenant_id, notification)
    except (OSError, httpx.TransportError) as e:
        raise TransientActionError(f"Notification delivery failed: {e}") from e
    return ActionOutcome(
        f"Notification sent to user {recipient}",
        {"user_id": recipient, "channels": list(notification.channels)},
    )


async def send_email(ctx: ActionContext, config: SendEmailConfig) -> ActionOutcome:
    to = str(resolve_placeholder(config.to, ctx.snapshot))
    if "@" not in to:
        raise PermanentActionError(f"Email recipient {to!r} is not an address")
    if config.template_id:
        subject, body = _render_template(ctx, config.template_id)
    else:
        subject, body = "", ""
    if config.subject:
        subject = _render(ctx, config.subject)
    if config.body:
        body = _render(ctx, config.body)
    try:
        await ctx.notifications.send([to], subject, body)
    except (OSError, httpx.TransportError) as e:
        raise TransientActionError(f"Email delivery failed: {e}") from e
    return ActionOutcome(f"Email sent to {to}", {"to": to, "subject": subject})


async def _create_follow_up(
    ctx: ActionContext,
    config: CreateTaskConfig | CreateActivityConfig,
    activity_type: ActivityType,
) -> ActionOutcome:
    if config.assigned_to:
        assignee = str(resolve_placeholder(config.assigned_to, ctx.snapshot))
    else:
        assignee = _default_owner(ctx.snapshot)
    due_at = (
        ctx.now + timedelta(minutes=config.due_in_minutes)
        if config.due_in_minutes is not None
        else None
    )
    task = await ctx.records.create_task(
        TaskCreate(
            tenant_id=ctx.tenant_id,
            entity_type=ctx.entity_type,
            entity_id=ctx.entity_id,
            subject=_render(ctx, config.subject),
            description=_render(ctx, config.description) if config.description else None,
            assigned_to_user_id=assignee,
            due_at=due_at,
            workflow_id=ctx.workflow_id,
            activity_type=activity_type,
        )
    )
    return ActionOutcome(
        f"Created {activity_type.value}: {task.subject}",
        {
            "task_id": task.id,
            "activity_type": activity_type.value,
            "assigned_to_user_id": assignee,
            "due_at": to_jsonable(due_at),
        },
    )


async def create_task(ctx: ActionContext, config: CreateTaskConfig) -> ActionOutcome:
    return await _create_follow_up(ctx, config, ActivityType.TASK)


async def create_activity(ctx: ActionContext, config: CreateActivityConfig) -> ActionOutcome:
    return await _create_follow_up(ctx, config, config.type)


async def update_field(ctx: ActionContext, config: UpdateFieldConfig) -> ActionOutcome:
    value = resolve_placeholder(config.value, ctx.snapshot)
    await ctx.records.update_fields(
        ctx.tenant_id, ctx.entity_type, ctx.entity_id, {config.field: value}
    )
    return ActionOutcome(
        f"Updated field '{config.field}'",
        {"field": config.field, "value": to_jsonable(value)},
    )


async def assign_owner(ctx: ActionContext, config: AssignOwnerConfig) -> ActionOutcome:
    field = config.field or next((f for f in OWNER_FIELDS if f in ctx.snapshot), None)
    if field is None:
        raise PermanentActionError(
            f"{ctx.entity_type} has no owner field ({', '.join(OWNER_FIELDS)})"
        )
    user_id = str(resolve_placeholder(config.user_id, ctx.snapshot))
    await ctx.records.update_fields(
        ctx.tenant_id, ctx.entity_type, ctx.entity_id, {field: user_id}
    )
    return ActionOutcome(f"Assigned to user {user_id}", {"field": field, "user_id": user_id})


async def invoke_webhook(ctx: ActionContext, config: InvokeWebhookConfig) -> ActionOutcome:
    if config.payload is not None:
        body = {k: resolve_placeholder(v, ctx.snapshot) for k, v in config.payload.items()}
    else:
        body = {
            "entity_type": ctx.entity_type,
            "entity_id": ctx.entity_id,
            "workflow_id": ctx.workflow_id,
            "rule_id": ctx.rule_id,
            "action_id": ctx.action_id,
            "trigger_instance_id": ctx.trigger_instance_id,
            "record": dict(ctx.snapshot),
        }
    headers = {
        "X-Idempotency-Key": f"{ctx.rule_id}:{ctx.action_id}:{ctx.entity_id}:{ctx.trigger_instance_id}",
        **config.headers,
    }
    try:
        response = await ctx.http_client.request(
            config.method,
            config.url,
            headers=headers,
            json=None if config.method == "GET" else to_jsonable(body),
        )
    except httpx.TimeoutException as e:
        raise TransientActionError(f"Webhook timed out: {config.url}") from e
    except httpx.TransportError as e:
        raise TransientActionError(f"Webhook transport error: {e}") from e
    details = {"url": config.url, "method": config.method, "status_code": response.status_code}
    if response.status_code >= 500:
        raise TransientActionError(f"Webhook returned {response.status_code}", details)
    if response.status_code >= 400:
        raise PermanentActionError(f"Webhook returned {response.status_code}", details)
    return ActionOutcome(f"Webhook {config.method} {config.url} -> {response.status_code}", details)


async def increment_counter(ctx: ActionContext, config: IncrementCounterConfig) -> ActionOutcome:
    new_value = await ctx.records.increment_field(
        ctx.tenant_id, ctx.entity_type, ctx.entity_id, config.field, config.amount
    )
    return ActionOutcome(
        f"Incremented '{config.field}' by {config.amount}",
        {"field": config.field, "amount": config.amount, "value": to_jsonable(new_value)},
    )


_HANDLERS: dict[ActionType, ActionHandler] = {
    ActionType.SEND_NOTIFICATION: send_notification,
    ActionType.SEND_EMAIL: send_email,
    ActionType.CREATE_TASK: create_task,
    ActionType.CREATE_ACTIVITY: create_activity,
    ActionType.UPDATE_FIELD: update_field,
    ActionType.ASSIGN_OWNER: assign_owner,
    ActionType.INVOKE_WEBHOOK: invoke_webhook,
    ActionType.INCREMENT_COUNTER: increment_counter,
}


def build_handler_registry(
    overrides: Mapping[ActionType, ActionHandler] | None = None,
) -> Mapping[ActionType, ActionHandler]:
    """Return the read-only table mapping each ActionType to its handler.

    Raises:
        RuntimeError: An ActionType has no handler.
    """
    handlers = {**_HANDLERS, **(overrides or {})}
    missing = [t.value for t in ActionType if t not in handlers]
    if missing:
        raise RuntimeError(f"No handler registered for action types: {', '.join(missing)}")
    return MappingProxyType(handlers)

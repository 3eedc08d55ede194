"""In-memory implementations of the repository protocols for engine tests.

One InMemoryAutomationStore holds the state; every unit of work it opens
sees the same data, the way separate transactions see one database.
savepoint() restores records and tasks if the block raises.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from crmflow.application.dtos.notification import InAppNotification
from crmflow.application.dtos.task import TaskCreate, TaskResult
from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate
from crmflow.application.services.definition_validator import WorkflowDefinitionValidator
from crmflow.domain.entities.execution import (
    ExecutionLogEntry,
    IdempotencyKey,
    ScheduledExecution,
)
from crmflow.domain.entities.workflow import (
    ActionChain,
    ActionEntity,
    RuleEntity,
    WorkflowEntity,
)
from crmflow.domain.enums import ExecutionStatus, ScheduledExecutionStatus, TriggerType
from crmflow.domain.exceptions import ResourceNotFoundException
from crmflow.shared.utils.generators import generate_cuid

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock for the engine and executor; advance() moves it forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class InMemoryAutomationStore:
    workflows: dict[str, WorkflowEntity] = field(default_factory=dict)
    log: list[ExecutionLogEntry] = field(default_factory=list)
    claims: set[IdempotencyKey] = field(default_factory=set)
    scheduled: dict[str, ScheduledExecution] = field(default_factory=dict)
    leases: dict[str, datetime] = field(default_factory=dict)
    records: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    tasks: list[TaskResult] = field(default_factory=list)
    units_opened: int = 0
    snapshot_pages: int = 0

    def add_workflow(self, workflow: WorkflowEntity) -> WorkflowEntity:
        self.workflows[workflow.id] = workflow
        return workflow

    def add_record(self, entity_type: str, record: dict[str, Any]) -> dict[str, Any]:
        self.records[(entity_type, str(record["id"]))] = dict(record)
        return self.records[(entity_type, str(record["id"]))]

    def entries(self, status: ExecutionStatus | None = None) -> list[ExecutionLogEntry]:
        return [e for e in self.log if status is None or e.status is status]

    def pending(self) -> list[ScheduledExecution]:
        return [
            r for r in self.scheduled.values() if r.status is ScheduledExecutionStatus.PENDING
        ]

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[FakeUnitOfWork]:
        self.units_opened += 1
        yield FakeUnitOfWork(self)


class FakeWorkflowRepository:
    def __init__(self, store: InMemoryAutomationStore) -> None:
        self.store = store
        self.validator = WorkflowDefinitionValidator()

    def _live(self) -> list[WorkflowEntity]:
        return sorted(
            (w for w in self.store.workflows.values() if w.is_active and not w.is_deleted),
            key=lambda w: (w.execution_order, w.id),
        )

    async def list_for_trigger(
        self, tenant_id: str, entity_type: str, trigger_type: TriggerType
    ) -> list[WorkflowEntity]:
        return [
            w
            for w in self._live()
            if w.tenant_id == tenant_id
            and w.entity_type == entity_type
            and w.trigger_type is trigger_type
        ]

    async def list_scheduled(self) -> list[WorkflowEntity]:
        return [w for w in self._live() if w.trigger_type is TriggerType.SCHEDULED]

    async def get_action_chain(self, action_id: str) -> ActionChain | None:
        for workflow in self.store.workflows.values():
            for rule in workflow.rules:
                for action in rule.actions:
                    if action.id == action_id:
                        return ActionChain(workflow, rule, action)
        return None

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> WorkflowEntity | None:
        workflow = self.store.workflows.get(workflow_id)
        if workflow is None or workflow.tenant_id != tenant_id or workflow.is_deleted:
            return None
        return workflow

    async def create_workflow(self, data: WorkflowCreate) -> WorkflowEntity:
        data = self.validator.validate_workflow(data)
        return self.store.add_workflow(
            WorkflowEntity(
                id=generate_cuid(),
                tenant_id=data.tenant_id,
                name=data.name,
                entity_type=data.entity_type,
                trigger_type=TriggerType(data.trigger_type),
                description=data.description,
                schedule_expression=data.schedule_expression,
                trigger_fields=data.trigger_fields,
                is_active=data.is_active,
                execution_order=data.execution_order,
                stop_on_match=data.stop_on_match,
            )
        )

    async def add_rule(self, data: RuleCreate) -> RuleEntity:
        data = self.validator.validate_rule(data)
        workflow = self.store.workflows.get(data.workflow_id)
        if workflow is None:
            raise ResourceNotFoundException("workflow", data.workflow_id)
        rule = RuleEntity(
            id=generate_cuid(),
            workflow_id=data.workflow_id,
            name=data.name,
            conditions=data.conditions,
            condition_logic=data.condition_logic,
            order=data.order,
            is_active=data.is_active,
        )
        workflow.rules.append(rule)
        return rule

    async def add_action(self, data: ActionCreate) -> ActionEntity:
        data = self.validator.validate_action(data)
        for workflow in self.store.workflows.values():
            for rule in workflow.rules:
                if rule.id == data.rule_id:
                    action = ActionEntity(
                        id=generate_cuid(),
                        rule_id=rule.id,
                        action_type=data.action_type,
                        action_config=data.action_config,
                        delay_minutes=data.delay_minutes,
                        order=data.order,
                        is_active=data.is_active,
                    )
                    rule.actions.append(action)
                    return action
        raise ResourceNotFoundException("rule", data.rule_id)


class FakeExecutionLogRepository:
    def __init__(self, store: InMemoryAutomationStore) -> None:
        self.store = store

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self.store.log.append(entry)
        return entry

    async def has_success(self, key: IdempotencyKey) -> bool:
        return any(
            e.status is ExecutionStatus.SUCCESS
            and IdempotencyKey(
                e.rule_id or "", e.action_id or "", e.entity_id, e.trigger_instance_id
            )
            == key
            for e in self.store.log
        )

    async def try_claim(self, tenant_id: str, key: IdempotencyKey) -> bool:
        if key in self.store.claims:
            return False
        self.store.claims.add(key)
        return True

    async def release_claim(self, key: IdempotencyKey) -> None:
        self.store.claims.discard(key)

    def _filtered(self, tenant_id: str, **filters: Any) -> list[ExecutionLogEntry]:
        items = [e for e in self.store.log if e.tenant_id == tenant_id]
        if filters.get("workflow_id") is not None:
            items = [e for e in items if e.workflow_id == filters["workflow_id"]]
        if filters.get("entity_id") is not None:
            items = [e for e in items if e.entity_id == filters["entity_id"]]
        if filters.get("status") is not None:
            items = [e for e in items if e.status is ExecutionStatus(filters["status"])]
        if filters.get("from_timestamp") is not None:
            items = [e for e in items if e.executed_at >= filters["from_timestamp"]]
        if filters.get("to_timestamp") is not None:
            items = [e for e in items if e.executed_at <= filters["to_timestamp"]]
        return sorted(items, key=lambda e: (e.executed_at, e.id), reverse=True)

    async def list(
        self, tenant_id: str, *, skip: int = 0, limit: int = 100, **filters: Any
    ) -> list[ExecutionLogEntry]:
        return self._filtered(tenant_id, **filters)[skip : skip + limit]

    async def count(self, tenant_id: str, **filters: Any) -> int:
        return len(self._filtered(tenant_id, **filters))


class FakeScheduledExecutionRepository:
    def __init__(self, store: InMemoryAutomationStore) -> None:
        self.store = store

    async def enqueue(self, record: ScheduledExecution) -> bool:
        for existing in self.store.scheduled.values():
            if (
                existing.action_id,
                existing.entity_id,
                existing.trigger_instance_id,
                existing.execute_at,
            ) == (record.action_id, record.entity_id, record.trigger_instance_id, record.execute_at):
                return False
        self.store.scheduled[record.id] = copy.deepcopy(record)
        return True

    async def claim_due(
        self, now: datetime, limit: int, lease_seconds: int
    ) -> list[ScheduledExecution]:
        due = sorted(
            (
                r
                for r in self.store.pending()
                if r.execute_at <= now
                and self.store.leases.get(r.id, datetime.min.replace(tzinfo=now.tzinfo)) <= now
            ),
            key=lambda r: (r.execute_at, r.id),
        )[:limit]
        for record in due:
            self.store.leases[record.id] = now + timedelta(seconds=lease_seconds)
        return [replace(r) for r in due]

    async def mark_completed(self, record_id: str, last_error: str | None = None) -> None:
        record = self.store.scheduled[record_id]
        record.status = ScheduledExecutionStatus.COMPLETED
        record.last_error = last_error
        self.store.leases.pop(record_id, None)


class FakeRecordStore:
    def __init__(self, store: InMemoryAutomationStore) -> None:
        self.store = store

    def _record(self, entity_type: str, entity_id: str) -> dict[str, Any]:
        record = self.store.records.get((entity_type, entity_id))
        if record is None:
            raise ResourceNotFoundException(entity_type, entity_id)
        return record

    async def update_fields(
        self, tenant_id: str, entity_type: str, entity_id: str, values: dict[str, Any]
    ) -> None:
        self._record(entity_type, entity_id).update(values)

    async def increment_field(
        self, tenant_id: str, entity_type: str, entity_id: str, field: str, amount: int
    ) -> Any:
        record = self._record(entity_type, entity_id)
        record[field] = (record.get(field) or 0) + amount
        return record[field]

    async def create_task(self, data: TaskCreate) -> TaskResult:
        task = TaskResult(
            id=generate_cuid(),
            tenant_id=data.tenant_id,
            entity_type=data.entity_type,
            entity_id=data.entity_id,
            subject=data.subject,
            description=data.description,
            assigned_to_user_id=data.assigned_to_user_id,
            due_at=data.due_at,
            status="open",
            created_at=NOW,
            activity_type=data.activity_type,
        )
        self.store.tasks.append(task)
        return task

    async def list_snapshots(
        self, tenant_id: str, entity_type: str, limit: int, after_id: str | None = None
    ) -> list[dict[str, Any]]:
        self.store.snapshot_pages += 1
        rows = [
            dict(r)
            for (kind, record_id), r in sorted(self.store.records.items())
            if kind == entity_type
            and r.get("tenant_id", tenant_id) == tenant_id
            and (after_id is None or record_id > after_id)
        ]
        return rows[:limit]


class FakeUnitOfWork:
    def __init__(self, store: InMemoryAutomationStore) -> None:
        self.store = store
        self.workflows = FakeWorkflowRepository(store)
        self.execution_logs = FakeExecutionLogRepository(store)
        self.scheduled = FakeScheduledExecutionRepository(store)
        self.records = FakeRecordStore(store)

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        records = copy.deepcopy(self.store.records)
        tasks = list(self.store.tasks)
        try:
            yield
        except BaseException:
            self.store.records = records
            self.store.tasks = tasks
            raise


class RecordingNotificationService:
    """INotificationService that records calls; set fail_with to raise instead."""

    def __init__(self) -> None:
        self.emails: list[tuple[list[str], str, str]] = []
        self.notifications: list[tuple[str, InAppNotification]] = []
        self.fail_with: Exception | None = None

    async def send(self, to_emails: list[str], subject: str, body: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.emails.append((list(to_emails), subject, body))

    async def notify_user(self, tenant_id: str, notification: InAppNotification) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.notifications.append((tenant_id, notification))


def make_action(
    action_type: str,
    config: dict[str, Any] | None = None,
    *,
    id: str | None = None,
    rule_id: str = "rule-1",
    delay_minutes: int = 0,
    order: int = 0,
    is_active: bool = True,
) -> ActionEntity:
    return ActionEntity(
        id=id or generate_cuid(),
        rule_id=rule_id,
        action_type=action_type,
        action_config=config or {},
        delay_minutes=delay_minutes,
        order=order,
        is_active=is_active,
    )


def make_rule(
    conditions: Any = None,
    actions: list[ActionEntity] | None = None,
    *,
    id: str | None = None,
    name: str = "rule",
    logic: str = "and",
    order: int = 0,
    workflow_id: str = "wf-1",
    is_active: bool = True,
) -> RuleEntity:
    rule_id = id or generate_cuid()
    for action in actions or []:
        action.rule_id = rule_id
    return RuleEntity(
        id=rule_id,
        workflow_id=workflow_id,
        name=name,
        conditions=conditions,
        condition_logic=logic,
        order=order,
        is_active=is_active,
        actions=list(actions or []),
    )


def make_workflow(
    rules: list[RuleEntity] | None = None,
    *,
    id: str | None = None,
    tenant_id: str = "tenant-1",
    entity_type: str = "Ticket",
    trigger_type: TriggerType = TriggerType.CREATE,
    stop_on_match: bool = False,
    execution_order: int = 0,
    schedule_expression: str | None = None,
    trigger_fields: list[str] | None = None,
    name: str = "workflow",
) -> WorkflowEntity:
    workflow_id = id or generate_cuid()
    for rule in rules or []:
        rule.workflow_id = workflow_id
    return WorkflowEntity(
        id=workflow_id,
        tenant_id=tenant_id,
        name=name,
        entity_type=entity_type,
        trigger_type=trigger_type,
        schedule_expression=schedule_expression,
        trigger_fields=trigger_fields,
        execution_order=execution_order,
        stop_on_match=stop_on_match,
        rules=list(rules or []),
    )


def cond(field: str, operator: str, value: Any = None) -> dict[str, Any]:
    return {"field": field, "operator": operator, "value": value}

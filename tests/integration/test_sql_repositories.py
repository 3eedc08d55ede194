"""SQL repository integration tests. Require Postgres with migrations applied; rolled back after each test."""

from datetime import UTC, datetime, timedelta

import pytest

from crmflow.application.dtos.task import TaskCreate
from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate
from crmflow.domain.entities.execution import ExecutionLogEntry, IdempotencyKey, ScheduledExecution
from crmflow.domain.enums import ActivityType, ExecutionStatus, TriggerType
from crmflow.domain.exceptions import ResourceNotFoundException, ValidationException
from crmflow.infrastructure.persistence.repositories import (
    ExecutionLogRepository,
    ScheduledExecutionRepository,
    SqlRecordStore,
    WorkflowRepository,
)
from crmflow.shared.utils.generators import generate_cuid

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


async def _workflow_with_action(repo: WorkflowRepository, tenant_id: str):
    workflow = await repo.create_workflow(
        WorkflowCreate(tenant_id=tenant_id, name="Escalate", entity_type="Ticket", trigger_type="Create")
    )
    rule = await repo.add_rule(
        RuleCreate(
            workflow_id=workflow.id,
            name="Critical",
            conditions=[{"field": "priority", "operator": "equals", "value": "Critical"}],
        )
    )
    action = await repo.add_action(
        ActionCreate(rule_id=rule.id, action_type="AssignOwner", action_config={"userId": "u1"})
    )
    return workflow, rule, action


@pytest.mark.requires_db
async def test_workflow_round_trip(db_session) -> None:
    """Create a workflow with one rule and action, then load it for a trigger."""
    repo = WorkflowRepository(db_session)
    tenant_id = generate_cuid()
    workflow, rule, action = await _workflow_with_action(repo, tenant_id)

    found = await repo.list_for_trigger(tenant_id, "Ticket", TriggerType.CREATE)
    assert [w.id for w in found] == [workflow.id]
    loaded_rule = found[0].ordered_rules()[0]
    assert loaded_rule.id == rule.id
    assert loaded_rule.condition_set is not None
    loaded_action = loaded_rule.ordered_actions()[0]
    assert loaded_action.id == action.id
    assert loaded_action.action_config == {"user_id": "u1"}

    chain = await repo.get_action_chain(action.id)
    assert chain is not None
    assert chain.workflow.id == workflow.id
    assert await repo.list_for_trigger(tenant_id, "Ticket", TriggerType.UPDATE) == []


@pytest.mark.requires_db
async def test_invalid_definitions_rejected(db_session) -> None:
    repo = WorkflowRepository(db_session)
    with pytest.raises(ValidationException):
        await repo.create_workflow(
            WorkflowCreate(tenant_id="t1", name="x", entity_type="Ticket", trigger_type="scheduled")
        )
    with pytest.raises(ResourceNotFoundException):
        await repo.add_rule(RuleCreate(workflow_id="missing", name="r"))


@pytest.mark.requires_db
async def test_execution_log_and_claims(db_session) -> None:
    repo = ExecutionLogRepository(db_session)
    tenant_id = generate_cuid()
    key = IdempotencyKey("r1", "a1", "T-1", generate_cuid())

    assert await repo.try_claim(tenant_id, key) is True
    assert await repo.try_claim(tenant_id, key) is False
    await repo.release_claim(key)
    assert await repo.try_claim(tenant_id, key) is True

    assert await repo.has_success(key) is False
    await repo.append(
        ExecutionLogEntry(
            id=generate_cuid(),
            tenant_id=tenant_id,
            workflow_id="w1",
            rule_id=key.rule_id,
            action_id=key.action_id,
            entity_type="Ticket",
            entity_id=key.entity_id,
            trigger_instance_id=key.trigger_instance_id,
            status=ExecutionStatus.SUCCESS,
            executed_at=NOW,
            details={"field": "owner_id"},
        )
    )
    assert await repo.has_success(key) is True
    items = await repo.list(tenant_id, workflow_id="w1")
    assert [i.details for i in items] == [{"field": "owner_id"}]
    assert await repo.count(tenant_id, status=ExecutionStatus.FAILED) == 0


@pytest.mark.requires_db
async def test_scheduled_queue_enqueue_claim_complete(db_session) -> None:
    repo = ScheduledExecutionRepository(db_session)
    record = ScheduledExecution(
        id=generate_cuid(),
        tenant_id=generate_cuid(),
        workflow_id="w1",
        rule_id="r1",
        action_id=generate_cuid(),
        entity_type="Ticket",
        entity_id="T-1",
        trigger_instance_id="trg-1",
        snapshot={"id": "T-1", "priority": "Critical"},
        execute_at=NOW + timedelta(minutes=10),
    )
    assert await repo.enqueue(record) is True
    duplicate = ScheduledExecution(**{**record.__dict__, "id": generate_cuid()})
    assert await repo.enqueue(duplicate) is False

    assert [r.id for r in await repo.claim_due(NOW + timedelta(minutes=5), 10, 60)] == []
    claimed = await repo.claim_due(NOW + timedelta(minutes=10), 10, 60)
    assert [r.id for r in claimed] == [record.id]
    assert claimed[0].snapshot == {"id": "T-1", "priority": "Critical"}
    # leased: not returned again until the lease expires
    assert await repo.claim_due(NOW + timedelta(minutes=10), 10, 60) == []

    await repo.mark_completed(record.id)
    assert await repo.claim_due(NOW + timedelta(hours=1), 10, 60) == []


@pytest.mark.requires_db
async def test_record_store_creates_task(db_session) -> None:
    store = SqlRecordStore(db_session)
    task = await store.create_task(
        TaskCreate(
            tenant_id=generate_cuid(),
            entity_type="Ticket",
            entity_id="T-1",
            subject="Call the customer",
            description=None,
            assigned_to_user_id="u1",
            due_at=NOW,
            activity_type=ActivityType.CALL,
        )
    )
    assert task.id
    assert task.status == "open"
    assert task.activity_type is ActivityType.CALL
    with pytest.raises(ValidationException):
        await store.update_fields("t1", "Spaceship", "S-1", {"name": "x"})

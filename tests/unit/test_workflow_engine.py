"""End-to-end tests for WorkflowEngine over the in-memory store."""

from datetime import timedelta

from crmflow.application.services.workflow_engine import WorkflowEngine, cron_trigger_id
from crmflow.domain.entities.workflow import WorkflowEntity
from crmflow.domain.enums import ExecutionStatus, TriggerType
from tests.fakes import NOW, cond, make_action, make_rule, make_workflow


class ExplodingWorkflow(WorkflowEntity):
    """Workflow whose rules cannot be loaded."""

    def ordered_rules(self):
        raise RuntimeError("corrupt definition")


async def test_stop_on_match_runs_only_first_matching_rule(engine, store) -> None:
    """Rule1 (priority == Low) produces nothing; Rule2 (priority == Critical) runs."""
    store.add_record("Ticket", {"id": "T-1", "priority": "Critical", "owner_id": None})
    store.add_workflow(
        make_workflow(
            [
                make_rule(
                    [cond("priority", "equals", "Low")],
                    [make_action("update_field", {"field": "status", "value": "triage"})],
                    id="rule-1",
                    order=1,
                ),
                make_rule(
                    [cond("priority", "equals", "Critical")],
                    [make_action("update_field", {"field": "status", "value": "escalated"})],
                    id="rule-2",
                    order=2,
                ),
            ],
            stop_on_match=True,
        )
    )
    entries = await engine.process_trigger(
        "tenant-1", "Ticket", "T-1", TriggerType.CREATE, {"id": "T-1", "priority": "Critical"}
    )
    assert len(entries) == 1
    assert entries[0].rule_id == "rule-2"
    assert entries[0].status is ExecutionStatus.SUCCESS
    assert store.log == entries
    assert store.records[("Ticket", "T-1")]["status"] == "escalated"


async def test_assign_owner_completes_before_return(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "owner_id": None})
    store.add_workflow(
        make_workflow([make_rule(None, [make_action("assign_owner", {"userId": "u1"})])])
    )
    entries = await engine.process_trigger(
        "tenant-1", "Ticket", "T-1", "Create", {"id": "T-1", "owner_id": None}
    )
    assert [e.status for e in entries] == [ExecutionStatus.SUCCESS]
    assert store.records[("Ticket", "T-1")]["owner_id"] == "u1"


async def test_deferred_notification_runs_once_when_due(engine, store, notifications) -> None:
    store.add_workflow(
        make_workflow(
            [
                make_rule(
                    None,
                    [make_action("send_notification", {"title": "Follow up"}, delay_minutes=10)],
                )
            ]
        )
    )
    snapshot = {"id": "T-1", "owner_id": "u-owner"}
    assert await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", snapshot) == []
    assert len(store.pending()) == 1

    assert await engine.process_due(NOW + timedelta(minutes=5)) == []
    assert store.log == []

    entries = await engine.process_due(NOW + timedelta(minutes=10))
    assert [e.status for e in entries] == [ExecutionStatus.SUCCESS]
    assert len(notifications.notifications) == 1

    assert await engine.process_due(NOW + timedelta(minutes=11)) == []
    assert len(store.log) == 1


async def test_deferred_action_deactivated_before_due_is_skipped(engine, store, notifications) -> None:
    action = make_action("send_notification", {"title": "Later"}, delay_minutes=10)
    store.add_workflow(make_workflow([make_rule(None, [action])]))
    await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": "u1"})

    action.is_active = False
    entries = await engine.process_due(NOW + timedelta(minutes=10))
    assert [e.status for e in entries] == [ExecutionStatus.SKIPPED]
    assert entries[0].details["reason"] == "state_changed"
    assert notifications.notifications == []


async def test_deferred_snapshot_is_frozen_at_trigger_time(engine, store, notifications) -> None:
    store.add_workflow(
        make_workflow(
            [make_rule(None, [make_action("send_notification", {"title": "{{ subject }}"}, delay_minutes=1)])]
        )
    )
    snapshot = {"id": "T-1", "owner_id": "u1", "subject": "Original"}
    await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", snapshot)
    snapshot["subject"] = "Changed"
    await engine.process_due(NOW + timedelta(minutes=1))
    assert notifications.notifications[0][1].title == "Original"


async def test_redelivered_trigger_is_idempotent(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "escalation_count": 0})
    store.add_workflow(
        make_workflow([make_rule(None, [make_action("increment_counter", {"field": "escalation_count"})])])
    )
    snapshot = {"id": "T-1", "escalation_count": 0}
    first = await engine.process_trigger(
        "tenant-1", "Ticket", "T-1", "create", snapshot, trigger_instance_id="evt-1"
    )
    second = await engine.process_trigger(
        "tenant-1", "Ticket", "T-1", "create", snapshot, trigger_instance_id="evt-1"
    )
    assert first[0].status is ExecutionStatus.SUCCESS
    assert second[0].status is ExecutionStatus.SKIPPED
    assert store.records[("Ticket", "T-1")]["escalation_count"] == 1


async def test_trigger_fields_filter_update_workflows(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "status": "open", "priority": "Low"})
    store.add_workflow(
        make_workflow(
            [make_rule(None, [make_action("update_field", {"field": "reviewed", "value": True})])],
            trigger_type=TriggerType.UPDATE,
            trigger_fields=["status"],
        )
    )
    unchanged = await engine.process_trigger(
        "tenant-1",
        "Ticket",
        "T-1",
        "update",
        {"id": "T-1", "status": "open", "priority": "High"},
        previous_snapshot={"id": "T-1", "status": "open", "priority": "Low"},
    )
    assert unchanged == []
    changed = await engine.process_trigger(
        "tenant-1",
        "Ticket",
        "T-1",
        "update",
        {"id": "T-1", "status": "closed", "priority": "Low"},
        previous_snapshot={"id": "T-1", "status": "open", "priority": "Low"},
    )
    assert [e.status for e in changed] == [ExecutionStatus.SUCCESS]


async def test_only_matching_tenant_entity_and_trigger_run(engine, store) -> None:
    store.add_workflow(make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])], tenant_id="tenant-2"))
    store.add_workflow(make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])], entity_type="Lead"))
    store.add_workflow(
        make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])], trigger_type=TriggerType.DELETE)
    )
    assert await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1"}) == []


async def test_invalid_trigger_type_returns_nothing(engine, store) -> None:
    store.add_workflow(make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])]))
    assert await engine.process_trigger("tenant-1", "Ticket", "T-1", "archive", {"id": "T-1"}) == []
    assert store.log == []


async def test_failing_action_does_not_stop_later_actions(engine, store, webhook) -> None:
    webhook.status_code = 400
    store.add_record("Ticket", {"id": "T-1", "owner_id": "u-owner"})
    store.add_workflow(
        make_workflow(
            [
                make_rule(
                    None,
                    [
                        make_action("invoke_webhook", {"url": "https://hooks.example.com"}, id="a1", order=0),
                        make_action("update_field", {"field": "status", "value": "notified"}, id="a2", order=1),
                    ],
                )
            ]
        )
    )
    entries = await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": "u-owner"})
    assert [(e.action_id, e.status) for e in entries] == [
        ("a1", ExecutionStatus.FAILED),
        ("a2", ExecutionStatus.SUCCESS),
    ]


async def test_rule_evaluation_failure_is_logged_and_other_rules_run(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1"})
    store.add_workflow(
        make_workflow(
            [
                make_rule([cond("region", "equals", "EU")], [make_action("assign_owner", {"user_id": "u1"})], id="r-region", order=0),
                make_rule([cond("id", "is_not_null")], [make_action("assign_owner", {"user_id": "u2"})], id="r-any", order=1),
            ]
        )
    )
    entries = await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": None})
    assert [(e.rule_id, e.action_id is None, e.status) for e in entries] == [
        ("r-region", True, ExecutionStatus.SKIPPED),
        ("r-any", False, ExecutionStatus.SUCCESS),
    ]


async def test_workflow_failure_is_isolated(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "owner_id": None})
    broken = ExplodingWorkflow(
        id="wf-broken",
        tenant_id="tenant-1",
        name="broken",
        entity_type="Ticket",
        trigger_type=TriggerType.CREATE,
        execution_order=0,
    )
    store.add_workflow(broken)
    store.add_workflow(
        make_workflow(
            [make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])],
            id="wf-good",
            execution_order=1,
        )
    )
    entries = await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": None})
    assert [(e.workflow_id, e.rule_id, e.status) for e in entries][0] == (
        "wf-broken",
        None,
        ExecutionStatus.FAILED,
    )
    assert entries[0].error_message == "corrupt definition"
    assert entries[1].workflow_id == "wf-good"
    assert entries[1].status is ExecutionStatus.SUCCESS


async def test_transient_failure_retried_on_due_pass(engine, store, webhook) -> None:
    webhook.status_code = 503
    store.add_workflow(
        make_workflow([make_rule(None, [make_action("invoke_webhook", {"url": "https://hooks.example.com"})])])
    )
    first = await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1"})
    assert first[0].status is ExecutionStatus.FAILED
    assert first[0].details["next_attempt"] == 2

    webhook.status_code = 200
    assert await engine.process_due(NOW + timedelta(minutes=4)) == []
    retried = await engine.process_due(NOW + timedelta(minutes=5))
    assert [(e.status, e.attempt) for e in retried] == [(ExecutionStatus.SUCCESS, 2)]
    assert len(webhook.requests) == 2


async def test_scheduled_workflow_fires_per_record_once_per_minute(engine, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "priority": "Critical", "escalation_count": 0})
    store.add_record("Ticket", {"id": "T-2", "priority": "Low", "escalation_count": 0})
    store.add_workflow(
        make_workflow(
            [
                make_rule(
                    [cond("priority", "equals", "Critical")],
                    [make_action("increment_counter", {"field": "escalation_count"})],
                )
            ],
            id="wf-cron",
            trigger_type=TriggerType.SCHEDULED,
            schedule_expression="0 9 * * mon-fri",
        )
    )
    entries = await engine.process_due(NOW)
    assert [(e.entity_id, e.status) for e in entries] == [("T-1", ExecutionStatus.SUCCESS)]
    assert entries[0].trigger_instance_id == cron_trigger_id("wf-cron", NOW) == "cron:wf-cron:202603020900"

    repeat = await engine.process_due(NOW)
    assert [e.status for e in repeat] == [ExecutionStatus.SKIPPED]
    assert store.records[("Ticket", "T-1")]["escalation_count"] == 1

    assert await engine.process_due(NOW + timedelta(minutes=1)) == []


async def test_each_workflow_gets_its_own_unit_of_work(engine, store) -> None:
    for order in range(3):
        store.add_workflow(
            make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])], execution_order=order)
        )
    store.add_record("Ticket", {"id": "T-1", "owner_id": None})
    await engine.process_trigger("tenant-1", "Ticket", "T-1", "create", {"id": "T-1", "owner_id": None})
    # one to load workflows, one per workflow
    assert store.units_opened == 4


async def test_scheduled_workflow_pages_past_scan_limit(store, executor, clock) -> None:
    engine = WorkflowEngine(
        store.unit_of_work,
        executor,
        due_batch_size=50,
        due_worker_concurrency=2,
        due_lease_seconds=60,
        snapshot_scan_limit=2,
        clock=clock,
    )
    for i in range(5):
        store.add_record("Ticket", {"id": f"T-{i}", "reminders": 0})
    store.add_workflow(
        make_workflow(
            [make_rule(None, [make_action("increment_counter", {"field": "reminders"})])],
            trigger_type=TriggerType.SCHEDULED,
            schedule_expression="* * * * *",
        )
    )
    entries = await engine.process_due(NOW)
    assert sorted(e.entity_id for e in entries) == [f"T-{i}" for i in range(5)]
    assert all(e.status is ExecutionStatus.SUCCESS for e in entries)
    assert all(store.records[("Ticket", f"T-{i}")]["reminders"] == 1 for i in range(5))
    # pages of 2, 2 and 1
    assert store.snapshot_pages == 3

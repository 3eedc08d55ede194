"""Workflow engine: drives matcher and executor for triggers and due ticks (implements IWorkflowEngine).

Every workflow runs in its own unit of work, so a failure in one workflow is
logged as a Failed entry and the next workflow still runs. Nothing raised
while evaluating or executing escapes to the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from types import MappingProxyType
from typing import Any

from crmflow.application.dtos.execution import ExecutionRequest
from crmflow.application.interfaces.repositories import IAutomationUnitOfWork
from crmflow.application.services.action_executor import ActionExecutor
from crmflow.application.services.cron import cron_match
from crmflow.application.services.rule_matcher import match_workflow
from crmflow.domain.entities.execution import ExecutionLogEntry, ScheduledExecution
from crmflow.domain.entities.workflow import WorkflowEntity
from crmflow.domain.enums import TriggerState, TriggerType
from crmflow.shared.telemetry.logging import get_logger
from crmflow.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from crmflow.shared.utils.datetime import ensure_utc, minute_ref, utc_now
from crmflow.shared.utils.generators import generate_cuid

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[[], AbstractAsyncContextManager[IAutomationUnitOfWork]]


def freeze_snapshot(snapshot: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return a read-only deep copy (mappings become MappingProxyType, lists tuples)."""

    def _freeze(value: Any) -> Any:
        if isinstance(value, Mapping):
            return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
        if isinstance(value, list | tuple):
            return tuple(_freeze(v) for v in value)
        return value

    return _freeze(snapshot)


def cron_trigger_id(workflow_id: str, tick: datetime) -> str:
    """Trigger instance id of a Scheduled workflow for one tick minute."""
    return f"cron:{workflow_id}:{minute_ref(tick)}"


class WorkflowEngine:
    """Finds, matches and runs workflows for entity triggers and scheduler ticks."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        executor: ActionExecutor,
        *,
        due_batch_size: int = 200,
        due_worker_concurrency: int = 4,
        due_lease_seconds: int = 300,
        snapshot_scan_limit: int = 1000,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._executor = executor
        self._due_batch_size = due_batch_size
        self._due_worker_concurrency = due_worker_concurrency
        self._due_lease_seconds = due_lease_seconds
        self._snapshot_scan_limit = snapshot_scan_limit
        self._clock = clock

    @traced("workflow_engine.process_trigger")
    async def process_trigger(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        trigger_type: TriggerType | str,
        snapshot: Mapping[str, Any],
        *,
        previous_snapshot: Mapping[str, Any] | None = None,
        trigger_instance_id: str | None = None,
        triggered_at: datetime | None = None,
    ) -> list[ExecutionLogEntry]:
        """Run every applicable workflow for one entity event.

        Immediate actions run before this returns; deferred ones are enqueued.
        Supplying trigger_instance_id makes a redelivered event idempotent.

        Returns:
            Log entries written during this call.
        """
        trigger_instance_id = trigger_instance_id or generate_cuid()
        self._transition(trigger_instance_id, TriggerState.RECEIVED)
        try:
            kind = TriggerType.parse(trigger_type)
        except ValueError:
            logger.error("Ignoring trigger %s with invalid type %r", trigger_instance_id, trigger_type)
            return []
        add_span_attributes(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            trigger_type=kind.value,
            trigger_instance_id=trigger_instance_id,
        )
        frozen = freeze_snapshot(snapshot)
        previous = freeze_snapshot(previous_snapshot) if previous_snapshot is not None else None
        triggered_at = ensure_utc(triggered_at) or self._clock()

        try:
            async with self._uow_factory() as uow:
                workflows = await uow.workflows.list_for_trigger(tenant_id, entity_type, kind)
        except Exception:
            logger.exception(
                "Could not load workflows for %s %s (tenant_id=%s, trigger=%s)",
                entity_type,
                entity_id,
                tenant_id,
                trigger_instance_id,
            )
            return []

        entries: list[ExecutionLogEntry] = []
        for workflow in workflows:
            entries.extend(
                await self._run_workflow(
                    workflow,
                    tenant_id=tenant_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    snapshot=frozen,
                    previous_snapshot=previous,
                    trigger_instance_id=trigger_instance_id,
                    triggered_at=triggered_at,
                )
            )
        self._transition(trigger_instance_id, TriggerState.COMPLETED)
        return entries

    @traced("workflow_engine.process_due")
    async def process_due(self, now: datetime | None = None) -> list[ExecutionLogEntry]:
        """Fire Scheduled workflows matching this minute, then run due deferred actions."""
        now = ensure_utc(now) or self._clock()
        entries = await self._fire_scheduled_workflows(now)
        entries.extend(await self._run_due_records(now))
        return entries

    async def _run_workflow(
        self,
        workflow: WorkflowEntity,
        *,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        snapshot: Mapping[str, Any],
        previous_snapshot: Mapping[str, Any] | None,
        trigger_instance_id: str,
        triggered_at: datetime,
    ) -> list[ExecutionLogEntry]:
        if not workflow.monitored_fields_changed(snapshot, previous_snapshot):
            logger.debug(
                "Workflow %s skipped: none of %s changed for %s",
                workflow.id,
                workflow.trigger_fields,
                entity_id,
            )
            return []
        try:
            async with self._uow_factory() as uow:
                self._transition(trigger_instance_id, TriggerState.MATCHING, workflow.id)
                result = match_workflow(workflow, snapshot, previous_snapshot)
                entries: list[ExecutionLogEntry] = []
                for failure in result.failures:
                    entries.append(
                        await self._executor.record_rule_failure(
                            uow,
                            tenant_id=tenant_id,
                            workflow=workflow,
                            failure=failure,
                            entity_type=entity_type,
                            entity_id=entity_id,
                            trigger_instance_id=trigger_instance_id,
                        )
                    )
                self._transition(trigger_instance_id, TriggerState.EXECUTING, workflow.id)
                for matched in result.matched:
                    for action in matched.rule.ordered_actions():
                        request = ExecutionRequest(
                            tenant_id=tenant_id,
                            workflow=workflow,
                            rule=matched.rule,
                            action=action,
                            entity_type=entity_type,
                            entity_id=entity_id,
                            snapshot=snapshot,
                            trigger_instance_id=trigger_instance_id,
                            triggered_at=triggered_at,
                            match_details={"match": matched.proof_details()},
                        )
                        if action.is_deferred:
                            await self._executor.schedule_deferred(uow, request)
                        else:
                            entries.append(await self._executor.execute(uow, request))
                return entries
        except Exception as e:
            logger.exception(
                "Workflow %s failed for %s %s (tenant_id=%s, trigger=%s)",
                workflow.id,
                entity_type,
                entity_id,
                tenant_id,
                trigger_instance_id,
            )
            return await self._record_workflow_failure(
                workflow.id, tenant_id, entity_type, entity_id, trigger_instance_id, e
            )

    async def _record_workflow_failure(
        self,
        workflow_id: str,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        trigger_instance_id: str,
        error: Exception,
    ) -> list[ExecutionLogEntry]:
        try:
            async with self._uow_factory() as uow:
                entry = await self._executor.record_workflow_failure(
                    uow,
                    tenant_id=tenant_id,
                    workflow_id=workflow_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    trigger_instance_id=trigger_instance_id,
                    error=error,
                )
        except Exception:
            logger.exception("Could not record failure of workflow %s", workflow_id)
            return []
        return [entry]

    async def _fire_scheduled_workflows(self, now: datetime) -> list[ExecutionLogEntry]:
        try:
            async with self._uow_factory() as uow:
                workflows = await uow.workflows.list_scheduled()
        except Exception:
            logger.exception("Could not load scheduled workflows")
            return []

        entries: list[ExecutionLogEntry] = []
        for workflow in workflows:
            try:
                due = cron_match(workflow.schedule_expression or "", now)
            except ValueError as e:
                logger.warning("Workflow %s has an invalid schedule: %s", workflow.id, e)
                continue
            if not due:
                continue
            trigger_instance_id = cron_trigger_id(workflow.id, now)
            self._transition(trigger_instance_id, TriggerState.RECEIVED, workflow.id)
            entries.extend(await self._run_over_all_records(workflow, trigger_instance_id, now))
            self._transition(trigger_instance_id, TriggerState.COMPLETED, workflow.id)
        return entries

    async def _run_over_all_records(
        self, workflow: WorkflowEntity, trigger_instance_id: str, now: datetime
    ) -> list[ExecutionLogEntry]:
        """Evaluate a Scheduled workflow against every record of its type, page by page."""
        entries: list[ExecutionLogEntry] = []
        after_id: str | None = None
        while True:
            try:
                async with self._uow_factory() as uow:
                    page = await uow.records.list_snapshots(
                        workflow.tenant_id,
                        workflow.entity_type,
                        self._snapshot_scan_limit,
                        after_id=after_id,
                    )
            except Exception:
                logger.exception(
                    "Could not list %s records for workflow %s (after %s)",
                    workflow.entity_type,
                    workflow.id,
                    after_id,
                )
                return entries
            for snapshot in page:
                entity_id = str(snapshot.get("id") or "")
                if not entity_id:
                    continue
                entries.extend(
                    await self._run_workflow(
                        workflow,
                        tenant_id=workflow.tenant_id,
                        entity_type=workflow.entity_type,
                        entity_id=entity_id,
                        snapshot=freeze_snapshot(snapshot),
                        previous_snapshot=None,
                        trigger_instance_id=trigger_instance_id,
                        triggered_at=now,
                    )
                )
            if len(page) < self._snapshot_scan_limit:
                return entries
            after_id = str(page[-1]["id"])

    async def _run_due_records(self, now: datetime) -> list[ExecutionLogEntry]:
        try:
            async with self._uow_factory() as uow:
                records = await uow.scheduled.claim_due(
                    now, self._due_batch_size, self._due_lease_seconds
                )
        except Exception:
            logger.exception("Could not claim due scheduled executions")
            return []
        if not records:
            return []
        logger.info("Running %d due scheduled executions", len(records))

        semaphore = asyncio.Semaphore(self._due_worker_concurrency)

        async def _run_one(record: ScheduledExecution) -> ExecutionLogEntry | None:
            async with semaphore:
                try:
                    async with self._uow_factory() as uow:
                        return await self._executor.execute_scheduled(uow, record, now)
                except Exception:
                    # Lease expiry puts the record back in the queue.
                    logger.exception(
                        "Scheduled execution %s failed (action_id=%s, entity_id=%s)",
                        record.id,
                        record.action_id,
                        record.entity_id,
                    )
                    return None

        results = await asyncio.gather(*(_run_one(r) for r in records))
        return [entry for entry in results if entry is not None]

    def _transition(
        self, trigger_instance_id: str, state: TriggerState, workflow_id: str | None = None
    ) -> None:
        logger.debug(
            "Trigger %s -> %s%s",
            trigger_instance_id,
            state.value,
            f" (workflow {workflow_id})" if workflow_id else "",
        )
        add_span_event(
            f"trigger.{state.value}",
            {"trigger_instance_id": trigger_instance_id, **({"workflow_id": workflow_id} if workflow_id else {})},
        )

"""Action executor: runs one action with idempotence, re-validation and a timeout.

The executor is the only writer of execution log entries. For one action it:

1. skips when a Success entry already exists for the idempotency key;
2. re-checks that workflow, rule and action are still active and not deleted;
3. fails when the stored action config did not parse;
4. claims the idempotency key (unique insert), skipping if another worker holds it;
5. runs the handler inside a savepoint under ``asyncio.timeout``.

A failed attempt releases the claim. Transient failures of retryable action
types are re-enqueued with linear backoff until max_action_attempts.
"""

import asyncio
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

import httpx

from crmflow.application.dtos.execution import ExecutionRequest
from crmflow.application.dtos.matching import RuleFailure
from crmflow.application.interfaces.repositories import IAutomationUnitOfWork
from crmflow.application.interfaces.services import INotificationService, ITemplateRenderer
from crmflow.application.services.action_handlers import ActionContext, ActionHandler
from crmflow.domain.entities.execution import ExecutionLogEntry, ScheduledExecution
from crmflow.domain.entities.workflow import ActionChain, WorkflowEntity
from crmflow.domain.enums import RETRYABLE_ACTION_TYPES, ExecutionStatus
from crmflow.domain.exceptions import (
    ActionExecutionError,
    CrmflowException,
    PermanentActionError,
    StateChangedError,
    TransientActionError,
)
from crmflow.shared.telemetry.logging import get_logger
from crmflow.shared.telemetry.tracing import add_span_attributes, traced
from crmflow.shared.utils.datetime import utc_now
from crmflow.shared.utils.generators import generate_cuid
from crmflow.shared.utils.serialization import to_jsonable

logger = get_logger(__name__)


class ActionExecutor:
    """Executes, defers and retries actions; writes every execution log entry."""

    def __init__(
        self,
        handlers: Mapping[Any, ActionHandler],
        *,
        notifications: INotificationService,
        renderer: ITemplateRenderer,
        http_client: httpx.AsyncClient,
        action_timeout_seconds: float = 30.0,
        max_action_attempts: int = 3,
        retry_backoff_minutes: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._handlers = handlers
        self._notifications = notifications
        self._renderer = renderer
        self._http_client = http_client
        self._timeout = action_timeout_seconds
        self._max_attempts = max_action_attempts
        self._backoff = timedelta(minutes=retry_backoff_minutes)
        self._clock = clock

    @traced("action_executor.execute")
    async def execute(
        self,
        uow: IAutomationUnitOfWork,
        request: ExecutionRequest,
        now: datetime | None = None,
    ) -> ExecutionLogEntry:
        """Run one action now and return the log entry written for it."""
        started = time.perf_counter()
        now = now or self._clock()
        action = request.action
        key = request.idempotency_key
        add_span_attributes(
            workflow_id=request.workflow.id,
            rule_id=request.rule.id,
            action_id=action.id,
            attempt=request.attempt,
        )

        if await uow.execution_logs.has_success(key):
            return await self._write(
                uow, request, ExecutionStatus.SKIPPED, started, now,
                error_message="Already executed successfully for this trigger",
                details={"reason": "duplicate"},
            )
        try:
            ActionChain(request.workflow, request.rule, action).ensure_runnable()
        except StateChangedError as e:
            return await self._write(
                uow, request, ExecutionStatus.SKIPPED, started, now,
                error_message=e.message,
                details={"reason": "state_changed", **e.details},
            )
        if action.config is None:
            return await self._write(
                uow, request, ExecutionStatus.FAILED, started, now,
                error_message=f"Malformed action config: {action.parse_error}",
                details={"error_code": "VALIDATION_ERROR"},
            )
        handler = self._handlers.get(action.kind)
        if handler is None:
            return await self._write(
                uow, request, ExecutionStatus.FAILED, started, now,
                error_message=f"No handler registered for action type {action.action_type}",
                details={"error_code": "VALIDATION_ERROR"},
            )
        if not await uow.execution_logs.try_claim(request.tenant_id, key):
            return await self._write(
                uow, request, ExecutionStatus.SKIPPED, started, now,
                error_message="Claimed by a concurrent execution",
                details={"reason": "claimed"},
            )

        ctx = ActionContext(
            tenant_id=request.tenant_id,
            workflow_id=request.workflow.id,
            workflow_name=request.workflow.name,
            rule_id=request.rule.id,
            action_id=action.id,
            entity_type=request.entity_type,
            entity_id=request.entity_id,
            trigger_instance_id=request.trigger_instance_id,
            snapshot=request.snapshot,
            now=now,
            records=uow.records,
            notifications=self._notifications,
            renderer=self._renderer,
            http_client=self._http_client,
        )
        try:
            async with uow.savepoint():
                async with asyncio.timeout(self._timeout):
                    outcome = await handler(ctx, action.config)
        except TimeoutError:
            error: ActionExecutionError = TransientActionError(
                f"Action timed out after {self._timeout:g}s"
            )
        except ActionExecutionError as e:
            error = e
        except CrmflowException as e:
            error = PermanentActionError(e.message, e.details)
        except Exception as e:
            logger.exception(
                "Action %s (%s) raised unexpectedly (tenant_id=%s, entity_id=%s)",
                action.id,
                action.action_type,
                request.tenant_id,
                request.entity_id,
            )
            error = PermanentActionError(str(e) or e.__class__.__name__)
        else:
            return await self._write(
                uow, request, ExecutionStatus.SUCCESS, started, now,
                details={"message": outcome.message, **outcome.details, **request.match_details},
            )

        await uow.execution_logs.release_claim(key)
        details: dict[str, Any] = {
            "error_code": error.error_code,
            "retryable": error.retryable,
            **error.details,
        }
        retry = await self._schedule_retry(uow, request, error, now)
        if retry is not None:
            details["retry_at"] = retry.execute_at.isoformat()
            details["next_attempt"] = retry.attempt
        return await self._write(
            uow, request, ExecutionStatus.FAILED, started, now,
            error_message=error.message,
            details=details,
        )

    async def schedule_deferred(
        self, uow: IAutomationUnitOfWork, request: ExecutionRequest
    ) -> ScheduledExecution | None:
        """Enqueue the action for triggered_at + delay_minutes. Writes no log entry.

        Returns None when the same record was already enqueued (redelivered trigger).
        """
        execute_at = request.triggered_at + timedelta(minutes=request.action.delay_minutes)
        record = self._scheduled_record(request, execute_at, request.attempt)
        if not await uow.scheduled.enqueue(record):
            logger.debug(
                "Deferred action %s for %s already enqueued (trigger=%s)",
                request.action.id,
                request.entity_id,
                request.trigger_instance_id,
            )
            return None
        logger.info(
            "Deferred action %s for %s %s until %s",
            request.action.id,
            request.entity_type,
            request.entity_id,
            execute_at.isoformat(),
        )
        return record

    @traced("action_executor.execute_scheduled")
    async def execute_scheduled(
        self, uow: IAutomationUnitOfWork, record: ScheduledExecution, now: datetime
    ) -> ExecutionLogEntry:
        """Execute a due deferred record and mark it completed."""
        chain = await uow.workflows.get_action_chain(record.action_id)
        if chain is None or not chain.workflow.belongs_to_tenant(record.tenant_id):
            entry = await self._append(
                uow,
                tenant_id=record.tenant_id,
                workflow_id=record.workflow_id,
                rule_id=record.rule_id,
                action_id=record.action_id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                trigger_instance_id=record.trigger_instance_id,
                status=ExecutionStatus.SKIPPED,
                executed_at=now,
                error_message=f"action {record.action_id} is deleted",
                details={"reason": "state_changed", "scheduled_execution_id": record.id},
                attempt=record.attempt,
            )
        else:
            request = ExecutionRequest(
                tenant_id=record.tenant_id,
                workflow=chain.workflow,
                rule=chain.rule,
                action=chain.action,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                snapshot=MappingProxyType(dict(record.snapshot)),
                trigger_instance_id=record.trigger_instance_id,
                triggered_at=record.execute_at,
                attempt=record.attempt,
                match_details={"scheduled_execution_id": record.id},
            )
            entry = await self.execute(uow, request, now=now)
        await uow.scheduled.mark_completed(
            record.id,
            last_error=entry.error_message if entry.status is ExecutionStatus.FAILED else None,
        )
        return entry

    async def record_rule_failure(
        self,
        uow: IAutomationUnitOfWork,
        *,
        tenant_id: str,
        workflow: WorkflowEntity,
        failure: RuleFailure,
        entity_type: str,
        entity_id: str,
        trigger_instance_id: str,
        now: datetime | None = None,
    ) -> ExecutionLogEntry:
        """Log a rule the matcher could not evaluate (FAILED or SKIPPED)."""
        return await self._append(
            uow,
            tenant_id=tenant_id,
            workflow_id=workflow.id,
            rule_id=failure.rule.id,
            action_id=None,
            entity_type=entity_type,
            entity_id=entity_id,
            trigger_instance_id=trigger_instance_id,
            status=failure.status,
            executed_at=now or self._clock(),
            error_message=failure.error_message,
            details=failure.details,
        )

    async def record_workflow_failure(
        self,
        uow: IAutomationUnitOfWork,
        *,
        tenant_id: str,
        workflow_id: str,
        entity_type: str,
        entity_id: str,
        trigger_instance_id: str,
        error: Exception,
    ) -> ExecutionLogEntry:
        """Log an unexpected error that aborted one workflow for one entity."""
        return await self._append(
            uow,
            tenant_id=tenant_id,
            workflow_id=workflow_id,
            rule_id=None,
            action_id=None,
            entity_type=entity_type,
            entity_id=entity_id,
            trigger_instance_id=trigger_instance_id,
            status=ExecutionStatus.FAILED,
            executed_at=self._clock(),
            error_message=str(error) or error.__class__.__name__,
            details={"error_code": getattr(error, "error_code", error.__class__.__name__)},
        )

    async def _schedule_retry(
        self,
        uow: IAutomationUnitOfWork,
        request: ExecutionRequest,
        error: ActionExecutionError,
        now: datetime,
    ) -> ScheduledExecution | None:
        if not error.retryable or request.action.kind not in RETRYABLE_ACTION_TYPES:
            return None
        if request.attempt >= self._max_attempts:
            logger.warning(
                "Action %s gave up after %d attempts (entity_id=%s): %s",
                request.action.id,
                request.attempt,
                request.entity_id,
                error.message,
            )
            return None
        record = self._scheduled_record(
            request, now + self._backoff * request.attempt, request.attempt + 1
        )
        if not await uow.scheduled.enqueue(record):
            return None
        return record

    def _scheduled_record(
        self, request: ExecutionRequest, execute_at: datetime, attempt: int
    ) -> ScheduledExecution:
        return ScheduledExecution(
            id=generate_cuid(),
            tenant_id=request.tenant_id,
            workflow_id=request.workflow.id,
            rule_id=request.rule.id,
            action_id=request.action.id,
            entity_type=request.entity_type,
            entity_id=request.entity_id,
            trigger_instance_id=request.trigger_instance_id,
            snapshot=to_jsonable(request.snapshot),
            execute_at=execute_at,
            attempt=attempt,
        )

    async def _write(
        self,
        uow: IAutomationUnitOfWork,
        request: ExecutionRequest,
        status: ExecutionStatus,
        started: float,
        now: datetime,
        *,
        error_message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ExecutionLogEntry:
        entry = await self._append(
            uow,
            tenant_id=request.tenant_id,
            workflow_id=request.workflow.id,
            rule_id=request.rule.id,
            action_id=request.action.id,
            entity_type=request.entity_type,
            entity_id=request.entity_id,
            trigger_instance_id=request.trigger_instance_id,
            status=status,
            executed_at=now,
            error_message=error_message,
            details=details,
            attempt=request.attempt,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        log = logger.warning if status is ExecutionStatus.FAILED else logger.info
        log(
            "Action %s (%s) for %s %s: %s%s",
            request.action.id,
            request.action.action_type,
            request.entity_type,
            request.entity_id,
            status.value,
            f" ({error_message})" if error_message else "",
        )
        return entry

    async def _append(
        self,
        uow: IAutomationUnitOfWork,
        *,
        tenant_id: str,
        workflow_id: str,
        rule_id: str | None,
        action_id: str | None,
        entity_type: str,
        entity_id: str,
        trigger_instance_id: str,
        status: ExecutionStatus,
        executed_at: datetime,
        error_message: str | None = None,
        details: dict[str, Any] | None = None,
        attempt: int = 1,
        duration_ms: int = 0,
    ) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            id=generate_cuid(),
            tenant_id=tenant_id,
            workflow_id=workflow_id,
            rule_id=rule_id,
            action_id=action_id,
            entity_type=entity_type,
            entity_id=entity_id,
            trigger_instance_id=trigger_instance_id,
            status=status,
            executed_at=executed_at,
            error_message=error_message,
            details=to_jsonable(details or {}),
            attempt=attempt,
            duration_ms=duration_ms,
        )
        return await uow.execution_logs.append(entry)

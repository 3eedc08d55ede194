"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference domain entities or application DTOs only; no infrastructure imports.
"""

from __future__ import annotations

import builtins
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from crmflow.application.dtos.task import TaskCreate, TaskResult
    from crmflow.application.dtos.workflow import ActionCreate, RuleCreate, WorkflowCreate
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
    from crmflow.domain.enums import ExecutionStatus, TriggerType


# Workflow definitions (read by the engine, written by management code)
class IWorkflowRepository(Protocol):
    """Protocol for workflow definition storage."""

    async def list_for_trigger(
        self, tenant_id: str, entity_type: str, trigger_type: TriggerType
    ) -> builtins.list[WorkflowEntity]:
        """Active, non-deleted workflows with rules and actions, by execution_order then id."""

    async def list_scheduled(self) -> builtins.list[WorkflowEntity]:
        """Active Scheduled workflows across tenants, with rules and actions."""

    async def get_action_chain(self, action_id: str) -> ActionChain | None:
        """Action with its rule and workflow, including inactive or deleted links."""

    async def get_by_id(self, workflow_id: str, tenant_id: str) -> WorkflowEntity | None:
        """Workflow with rules and actions, or None."""

    async def create_workflow(self, data: WorkflowCreate) -> WorkflowEntity:
        """Persist a validated workflow definition."""

    async def add_rule(self, data: RuleCreate) -> RuleEntity:
        """Persist a validated rule under an existing workflow."""

    async def add_action(self, data: ActionCreate) -> ActionEntity:
        """Persist a validated action under an existing rule."""


# Execution log: append-only audit trail plus idempotence ledger
class IExecutionLogRepository(Protocol):
    """Protocol for the execution log and its idempotency claims."""

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append one entry. Entries are never updated."""

    async def has_success(self, key: IdempotencyKey) -> bool:
        """Return whether a Success entry exists for the key."""

    async def try_claim(self, tenant_id: str, key: IdempotencyKey) -> bool:
        """Atomically claim the key; False if another execution holds it."""

    async def release_claim(self, key: IdempotencyKey) -> None:
        """Drop a claim after a failed attempt so a retry may claim it."""

    async def list(
        self,
        tenant_id: str,
        *,
        skip: int = 0,
        limit: int = 100,
        workflow_id: str | None = None,
        entity_id: str | None = None,
        status: ExecutionStatus | None = None,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
    ) -> builtins.list[ExecutionLogEntry]:
        """List entries for tenant with optional filters (newest first)."""

    async def count(
        self,
        tenant_id: str,
        *,
        workflow_id: str | None = None,
        entity_id: str | None = None,
        status: ExecutionStatus | None = None,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
    ) -> int:
        """Count entries matching the same filters as list()."""


# Durable deferred actions
class IScheduledExecutionRepository(Protocol):
    """Protocol for the deferred-action queue."""

    async def enqueue(self, record: ScheduledExecution) -> bool:
        """Insert a pending record; False if the same key and execute_at already exist."""

    async def claim_due(
        self, now: datetime, limit: int, lease_seconds: int
    ) -> builtins.list[ScheduledExecution]:
        """Lease pending records with execute_at <= now whose lease has expired."""

    async def mark_completed(self, record_id: str, last_error: str | None = None) -> None:
        """Mark a record completed (terminal for this attempt)."""


# CRM record store (external collaborator)
class IRecordStore(Protocol):
    """Protocol for the business-record store the actions write to."""

    async def update_fields(
        self, tenant_id: str, entity_type: str, entity_id: str, values: dict[str, Any]
    ) -> None:
        """Set fields on one record. Raises ResourceNotFoundException if absent."""

    async def increment_field(
        self, tenant_id: str, entity_type: str, entity_id: str, field: str, amount: int
    ) -> Any:
        """Atomically add amount to a numeric field; return the new value."""

    async def create_task(self, data: TaskCreate) -> TaskResult:
        """Create a task linked to a record."""

    async def list_snapshots(
        self, tenant_id: str, entity_type: str, limit: int, after_id: str | None = None
    ) -> builtins.list[dict[str, Any]]:
        """One page of field maps for records of a type, ordered by id.

        Each map includes 'id'. Pass the last id of a page as after_id to get the next.
        """


class IAutomationUnitOfWork(Protocol):
    """Repositories sharing one transaction, plus nested savepoints."""

    workflows: IWorkflowRepository
    execution_logs: IExecutionLogRepository
    scheduled: IScheduledExecutionRepository
    records: IRecordStore

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Nested transaction; rolled back if the block raises."""

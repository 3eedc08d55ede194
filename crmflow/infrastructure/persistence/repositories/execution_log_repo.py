"""Execution log repository. Append-only; implements IExecutionLogRepository.

Also owns the idempotency claim table: a claim is a unique insert on the
idempotency key, so two workers racing on the same key cannot both win.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, exists, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.domain.entities.execution import ExecutionLogEntry, IdempotencyKey
from crmflow.domain.enums import ExecutionStatus
from crmflow.infrastructure.persistence.models.execution import (
    WorkflowExecutionClaim,
    WorkflowExecutionLog,
)
from crmflow.shared.utils.datetime import ensure_utc
from crmflow.shared.utils.serialization import to_jsonable


def _orm_to_entry(row: WorkflowExecutionLog) -> ExecutionLogEntry:
    """Map ORM to domain entry."""
    return ExecutionLogEntry(
        id=row.id,
        tenant_id=row.tenant_id,
        workflow_id=row.workflow_id,
        rule_id=row.rule_id,
        action_id=row.action_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        trigger_instance_id=row.trigger_instance_id,
        status=ExecutionStatus(row.status),
        executed_at=ensure_utc(row.executed_at),
        error_message=row.error_message,
        details=dict(row.details or {}),
        attempt=row.attempt,
        duration_ms=row.duration_ms,
    )


def _key_clause(model: Any, key: IdempotencyKey):
    return and_(
        model.rule_id == key.rule_id,
        model.action_id == key.action_id,
        model.entity_id == key.entity_id,
        model.trigger_instance_id == key.trigger_instance_id,
    )


class ExecutionLogRepository:
    """Append-only execution log. No update/delete of entries."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append one entry; return it unchanged."""
        self.db.add(
            WorkflowExecutionLog(
                id=entry.id,
                tenant_id=entry.tenant_id,
                workflow_id=entry.workflow_id,
                rule_id=entry.rule_id,
                action_id=entry.action_id,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                trigger_instance_id=entry.trigger_instance_id,
                status=entry.status.value,
                error_message=entry.error_message,
                details=to_jsonable(entry.details),
                attempt=entry.attempt,
                duration_ms=entry.duration_ms,
                executed_at=entry.executed_at,
            )
        )
        await self.db.flush()
        return entry

    async def has_success(self, key: IdempotencyKey) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    _key_clause(WorkflowExecutionLog, key),
                    WorkflowExecutionLog.status == ExecutionStatus.SUCCESS.value,
                )
            )
        )
        return bool(result.scalar())

    async def try_claim(self, tenant_id: str, key: IdempotencyKey) -> bool:
        stmt = (
            pg_insert(WorkflowExecutionClaim)
            .values(
                tenant_id=tenant_id,
                rule_id=key.rule_id,
                action_id=key.action_id,
                entity_id=key.entity_id,
                trigger_instance_id=key.trigger_instance_id,
            )
            .on_conflict_do_nothing(
                index_elements=["rule_id", "action_id", "entity_id", "trigger_instance_id"]
            )
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def release_claim(self, key: IdempotencyKey) -> None:
        await self.db.execute(
            delete(WorkflowExecutionClaim).where(_key_clause(WorkflowExecutionClaim, key))
        )

    def _filters(
        self,
        tenant_id: str,
        workflow_id: str | None,
        entity_id: str | None,
        status: ExecutionStatus | None,
        from_timestamp: datetime | None,
        to_timestamp: datetime | None,
    ) -> list[Any]:
        conditions: list[Any] = [WorkflowExecutionLog.tenant_id == tenant_id]
        if workflow_id is not None:
            conditions.append(WorkflowExecutionLog.workflow_id == workflow_id)
        if entity_id is not None:
            conditions.append(WorkflowExecutionLog.entity_id == entity_id)
        if status is not None:
            conditions.append(WorkflowExecutionLog.status == ExecutionStatus(status).value)
        if from_timestamp is not None:
            conditions.append(WorkflowExecutionLog.executed_at >= from_timestamp)
        if to_timestamp is not None:
            conditions.append(WorkflowExecutionLog.executed_at <= to_timestamp)
        return conditions

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
    ) -> list[ExecutionLogEntry]:
        """List entries for tenant with optional filters (newest first)."""
        conditions = self._filters(
            tenant_id, workflow_id, entity_id, status, from_timestamp, to_timestamp
        )
        stmt = (
            select(WorkflowExecutionLog)
            .where(and_(*conditions))
            .order_by(WorkflowExecutionLog.executed_at.desc(), WorkflowExecutionLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [_orm_to_entry(r) for r in result.scalars().all()]

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
        conditions = self._filters(
            tenant_id, workflow_id, entity_id, status, from_timestamp, to_timestamp
        )
        result = await self.db.execute(
            select(func.count()).select_from(WorkflowExecutionLog).where(and_(*conditions))
        )
        return int(result.scalar_one())

"""Deferred-action queue. Implements IScheduledExecutionRepository.

Due records are leased with FOR UPDATE SKIP LOCKED and a locked_until
timestamp. A worker that dies mid-record leaves it pending; once the lease
expires the next due pass picks it up again.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from crmflow.domain.entities.execution import ScheduledExecution
from crmflow.domain.enums import ScheduledExecutionStatus
from crmflow.infrastructure.persistence.models.execution import WorkflowScheduledExecution
from crmflow.shared.utils.datetime import ensure_utc
from crmflow.shared.utils.serialization import to_jsonable


def _orm_to_entity(row: WorkflowScheduledExecution) -> ScheduledExecution:
    return ScheduledExecution(
        id=row.id,
        tenant_id=row.tenant_id,
        workflow_id=row.workflow_id,
        rule_id=row.rule_id,
        action_id=row.action_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        trigger_instance_id=row.trigger_instance_id,
        snapshot=dict(row.snapshot or {}),
        execute_at=ensure_utc(row.execute_at),
        attempt=row.attempt,
        status=ScheduledExecutionStatus(row.status),
        last_error=row.last_error,
    )


class ScheduledExecutionRepository:
    """Durable queue of deferred and retried actions."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def enqueue(self, record: ScheduledExecution) -> bool:
        stmt = (
            pg_insert(WorkflowScheduledExecution)
            .values(
                id=record.id,
                tenant_id=record.tenant_id,
                workflow_id=record.workflow_id,
                rule_id=record.rule_id,
                action_id=record.action_id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                trigger_instance_id=record.trigger_instance_id,
                snapshot=to_jsonable(record.snapshot),
                execute_at=record.execute_at,
                attempt=record.attempt,
                status=record.status.value,
                last_error=record.last_error,
            )
            .on_conflict_do_nothing(constraint="uq_scheduled_execution_key")
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def claim_due(
        self, now: datetime, limit: int, lease_seconds: int
    ) -> list[ScheduledExecution]:
        """Lease up to limit due records; rows locked by another worker are skipped."""
        model = WorkflowScheduledExecution
        result = await self.db.execute(
            select(model)
            .where(
                model.status == ScheduledExecutionStatus.PENDING.value,
                model.execute_at <= now,
                or_(model.locked_until.is_(None), model.locked_until <= now),
            )
            .order_by(model.execute_at.asc(), model.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list(result.scalars().all())
        lease = now + timedelta(seconds=lease_seconds)
        for row in rows:
            row.locked_until = lease
        await self.db.flush()
        return [_orm_to_entity(r) for r in rows]

    async def mark_completed(self, record_id: str, last_error: str | None = None) -> None:
        await self.db.execute(
            update(WorkflowScheduledExecution)
            .where(WorkflowScheduledExecution.id == record_id)
            .values(
                status=ScheduledExecutionStatus.COMPLETED.value,
                last_error=last_error,
                locked_until=None,
                completed_at=func.now(),
            )
        )

"""Execution log, idempotency claim and scheduled execution ORM models."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from crmflow.domain.enums import ExecutionStatus, ScheduledExecutionStatus
from crmflow.infrastructure.persistence.database import Base
from crmflow.infrastructure.persistence.models.mixins import (
    CuidMixin,
    MultiTenantModel,
    TenantMixin,
)
from crmflow.infrastructure.persistence.models.workflow import _in_values


class WorkflowExecutionLog(CuidMixin, TenantMixin, Base):
    """Append-only execution log. Table: workflow_execution_log.

    No FKs to definitions: entries outlive deleted workflows and are pruned
    by the retention job only.
    """

    __tablename__ = "workflow_execution_log"

    workflow_id: Mapped[str] = mapped_column(String, nullable=False)
    rule_id: Mapped[str | None] = mapped_column(String, nullable=True)
    action_id: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    trigger_instance_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    attempt: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=sa.text("1")
    )
    duration_ms: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_execution_log_tenant_executed", "tenant_id", "executed_at"),
        Index("ix_execution_log_tenant_workflow", "tenant_id", "workflow_id", "executed_at"),
        Index("ix_execution_log_tenant_entity", "tenant_id", "entity_id"),
        Index(
            "ix_execution_log_idempotency",
            "rule_id",
            "action_id",
            "entity_id",
            "trigger_instance_id",
            "status",
        ),
        CheckConstraint(
            _in_values("status", ExecutionStatus.values()),
            name="workflow_execution_log_status_check",
        ),
    )


class WorkflowExecutionClaim(TenantMixin, Base):
    """Idempotency claim. Table: workflow_execution_claim. PK is the idempotency key."""

    __tablename__ = "workflow_execution_claim"

    rule_id: Mapped[str] = mapped_column(String, primary_key=True)
    action_id: Mapped[str] = mapped_column(String, primary_key=True)
    entity_id: Mapped[str] = mapped_column(String, primary_key=True)
    trigger_instance_id: Mapped[str] = mapped_column(String, primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class WorkflowScheduledExecution(MultiTenantModel, Base):
    """Durable deferred action. Table: workflow_scheduled_execution."""

    __tablename__ = "workflow_scheduled_execution"

    workflow_id: Mapped[str] = mapped_column(String, nullable=False)
    rule_id: Mapped[str] = mapped_column(String, nullable=False)
    action_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    trigger_instance_id: Mapped[str] = mapped_column(String, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    execute_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempt: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=sa.text("1")
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ScheduledExecutionStatus.PENDING.value,
        server_default=ScheduledExecutionStatus.PENDING.value,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "action_id",
            "entity_id",
            "trigger_instance_id",
            "execute_at",
            name="uq_scheduled_execution_key",
        ),
        Index("ix_scheduled_execution_due", "status", "execute_at"),
        CheckConstraint(
            _in_values("status", ScheduledExecutionStatus.values()),
            name="workflow_scheduled_execution_status_check",
        ),
    )

"""Workflow, WorkflowRule and WorkflowAction ORM models. Rule-driven automation definitions."""

from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crmflow.domain.enums import ActionType, ConditionLogic, TriggerType
from crmflow.infrastructure.persistence.database import Base
from crmflow.infrastructure.persistence.models.mixins import (
    CuidMixin,
    SoftDeleteMixin,
    SoftDeleteMultiTenantModel,
    TimestampMixin,
)


def _in_values(column: str, values: list[str]) -> str:
    return "{} IN ({})".format(
        column, ", ".join("'{}'".format(v.replace("'", "''")) for v in values)
    )


class Workflow(SoftDeleteMultiTenantModel, Base):
    """Workflow definition. Table: workflow. Entity type + trigger, owns ordered rules."""

    __tablename__ = "workflow"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    schedule_expression: Mapped[str | None] = mapped_column(String(128), nullable=True)
    trigger_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa.text("true")
    )
    execution_order: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    stop_on_match: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.text("false")
    )

    rules: Mapped[list["WorkflowRule"]] = relationship(
        back_populates="workflow",
        lazy="selectin",
        order_by="(WorkflowRule.order, WorkflowRule.id)",
    )

    __table_args__ = (
        Index("ix_workflow_tenant_entity_trigger", "tenant_id", "entity_type", "trigger_type"),
        CheckConstraint(
            _in_values("trigger_type", TriggerType.values()),
            name="workflow_trigger_type_check",
        ),
    )


class WorkflowRule(CuidMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Rule of a workflow. Table: workflow_rule. Flat condition list + logic."""

    __tablename__ = "workflow_rule"

    workflow_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    order: Mapped[int] = mapped_column(
        "sort_order", Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    condition_logic: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default=ConditionLogic.AND.value,
        server_default=ConditionLogic.AND.value,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa.text("true")
    )

    workflow: Mapped[Workflow] = relationship(back_populates="rules")
    actions: Mapped[list["WorkflowAction"]] = relationship(
        back_populates="rule",
        lazy="selectin",
        order_by="(WorkflowAction.order, WorkflowAction.id)",
    )

    __table_args__ = (
        CheckConstraint(
            _in_values("condition_logic", ConditionLogic.values()),
            name="workflow_rule_condition_logic_check",
        ),
    )


class WorkflowAction(CuidMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Action of a rule. Table: workflow_action. Typed config per action_type."""

    __tablename__ = "workflow_action"

    rule_id: Mapped[str] = mapped_column(
        String, ForeignKey("workflow_rule.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    action_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    delay_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    order: Mapped[int] = mapped_column(
        "sort_order", Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa.text("true")
    )

    rule: Mapped[WorkflowRule] = relationship(back_populates="actions")

    __table_args__ = (
        CheckConstraint(
            _in_values("action_type", ActionType.values()),
            name="workflow_action_type_check",
        ),
        CheckConstraint("delay_minutes >= 0", name="workflow_action_delay_check"),
    )

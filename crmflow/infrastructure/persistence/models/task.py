"""Follow-ups (tasks, calls, meetings, ...) written by the create_task and create_activity actions."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from crmflow.domain.enums import ActivityType
from crmflow.infrastructure.persistence.database import Base
from crmflow.infrastructure.persistence.models.mixins import MultiTenantModel
from crmflow.infrastructure.persistence.models.workflow import _in_values


class Task(MultiTenantModel, Base):
    __tablename__ = "task"
    __table_args__ = (
        Index("ix_task_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        Index("ix_task_assigned", "tenant_id", "assigned_to_user_id"),
        CheckConstraint(
            _in_values("activity_type", ActivityType.values()), name="task_activity_type_check"
        ),
    )

    # The CRM record the task is about.
    entity_type: Mapped[str] = mapped_column(String(64))
    entity_id: Mapped[str] = mapped_column(String)
    # Workflow that created it; nullable so tasks outlive workflow deletion.
    workflow_id: Mapped[str | None] = mapped_column(String, index=True)

    subject: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    assigned_to_user_id: Mapped[str | None] = mapped_column(String)
    due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(32), default="open", server_default="open")
    activity_type: Mapped[str] = mapped_column(
        String(32), default=ActivityType.TASK.value, server_default=ActivityType.TASK.value
    )

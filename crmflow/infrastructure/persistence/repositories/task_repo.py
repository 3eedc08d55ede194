"""Insert side of the task table; SqlRecordStore.create_task delegates here."""

from __future__ import annotations

from dataclasses import asdict

from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.application.dtos.task import TaskCreate, TaskResult
from crmflow.infrastructure.persistence.models.task import Task
from crmflow.shared.utils.datetime import utc_now
from crmflow.shared.utils.generators import generate_cuid


class TaskRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(self, data: TaskCreate, *, status: str = "open") -> TaskResult:
        now = utc_now()
        fields = asdict(data)
        task = Task(
            id=generate_cuid(),
            status=status,
            created_at=now,
            updated_at=now,
            **{**fields, "activity_type": data.activity_type.value},
        )
        self.db.add(task)
        await self.db.flush()
        del fields["workflow_id"]
        return TaskResult(id=task.id, status=task.status, created_at=task.created_at, **fields)

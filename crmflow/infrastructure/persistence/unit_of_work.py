"""SQL unit of work for the automation engine (implements IAutomationUnitOfWork).

One unit of work is one database transaction: it commits when the block
exits normally and rolls back when it raises. savepoint() opens a nested
transaction so one action's side effects can be undone without losing the
log entries written around it.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction, async_sessionmaker

from crmflow.infrastructure.persistence.database import get_session_factory
from crmflow.infrastructure.persistence.repositories.execution_log_repo import (
    ExecutionLogRepository,
)
from crmflow.infrastructure.persistence.repositories.record_store import SqlRecordStore
from crmflow.infrastructure.persistence.repositories.scheduled_execution_repo import (
    ScheduledExecutionRepository,
)
from crmflow.infrastructure.persistence.repositories.workflow_repo import WorkflowRepository


class SqlAutomationUnitOfWork:
    """Repositories bound to one AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.workflows = WorkflowRepository(session)
        self.execution_logs = ExecutionLogRepository(session)
        self.scheduled = ScheduledExecutionRepository(session)
        self.records = SqlRecordStore(session)

    def savepoint(self) -> AsyncSessionTransaction:
        return self.session.begin_nested()


@asynccontextmanager
async def sql_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[SqlAutomationUnitOfWork]:
    """Open a session and transaction; yield the unit of work bound to it.

    Raises SqlNotConfiguredException when no factory is given and DATABASE_URL is not set.
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        async with session.begin():
            yield SqlAutomationUnitOfWork(session)

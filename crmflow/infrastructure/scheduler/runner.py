"""Scheduler runner: calls process_due once per poll interval.

Ticks are aligned to the UTC minute so cron trigger ids are stable across
workers and restarts. Several runners may poll the same database; the
lease on due records and the idempotency claims keep them from running
the same action twice.
"""

import asyncio
from datetime import datetime

from crmflow.application.interfaces.services import IWorkflowEngine
from crmflow.shared.telemetry.logging import get_logger
from crmflow.shared.utils.datetime import utc_now

logger = get_logger(__name__)


class SchedulerRunner:
    """Background asyncio task around WorkflowEngine.process_due."""

    def __init__(self, engine: IWorkflowEngine, poll_seconds: float = 30.0) -> None:
        self._engine = engine
        self._poll_seconds = max(1.0, poll_seconds)
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: datetime | None = None) -> int:
        """Run one due pass; return the number of log entries written."""
        tick = (now or utc_now()).replace(second=0, microsecond=0)
        entries = await self._engine.process_due(tick)
        if entries:
            logger.info("Scheduler tick %s wrote %d execution log entries", tick.isoformat(), len(entries))
        return len(entries)

    async def run_forever(self) -> None:
        logger.info("Scheduler started (poll every %.0fs)", self._poll_seconds)
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._poll_seconds)
            except TimeoutError:
                pass
        logger.info("Scheduler stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever(), name="crmflow-scheduler")

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

"""Due-tick scheduler: drives WorkflowEngine.process_due on an interval."""

from crmflow.infrastructure.scheduler.runner import SchedulerRunner

__all__ = ["SchedulerRunner"]

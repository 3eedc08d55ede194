"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from crmflow.infrastructure or crmflow.api.
"""

from crmflow.application.interfaces.repositories import (
    IAutomationUnitOfWork,
    IExecutionLogRepository,
    IRecordStore,
    IScheduledExecutionRepository,
    IWorkflowRepository,
)
from crmflow.application.interfaces.services import (
    INotificationService,
    ITemplateRenderer,
    IWorkflowEngine,
)

__all__ = [
    "IAutomationUnitOfWork",
    "IExecutionLogRepository",
    "INotificationService",
    "IRecordStore",
    "IScheduledExecutionRepository",
    "ITemplateRenderer",
    "IWorkflowEngine",
    "IWorkflowRepository",
]

"""Composition root for the automation engine.

Builds the handler registry, executor and engine from Settings. Used by the
FastAPI lifespan and by the standalone scheduler script so both processes
run the same wiring.
"""

from collections.abc import Mapping

import httpx

from crmflow.application.interfaces.services import INotificationService, ITemplateRenderer
from crmflow.application.services.action_executor import ActionExecutor
from crmflow.application.services.action_handlers import ActionHandler, build_handler_registry
from crmflow.application.services.workflow_engine import UnitOfWorkFactory, WorkflowEngine
from crmflow.core.config import Settings
from crmflow.domain.enums import ActionType
from crmflow.infrastructure.persistence.unit_of_work import sql_unit_of_work
from crmflow.infrastructure.services.notification_service import LogOnlyNotificationService
from crmflow.infrastructure.services.template_renderer import WorkflowTemplateRenderer


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared outbound client for invoke_webhook (connection reuse)."""
    return httpx.AsyncClient(timeout=settings.webhook_timeout_seconds, follow_redirects=False)


def build_engine(
    settings: Settings,
    http_client: httpx.AsyncClient,
    *,
    uow_factory: UnitOfWorkFactory | None = None,
    notifications: INotificationService | None = None,
    renderer: ITemplateRenderer | None = None,
    handler_overrides: Mapping[ActionType, ActionHandler] | None = None,
) -> WorkflowEngine:
    """Return a WorkflowEngine wired to SQL persistence unless factories are supplied.

    Raises:
        RuntimeError: An action type has no handler.
    """
    executor = ActionExecutor(
        build_handler_registry(handler_overrides),
        notifications=notifications or LogOnlyNotificationService(),
        renderer=renderer or WorkflowTemplateRenderer(),
        http_client=http_client,
        action_timeout_seconds=settings.action_timeout_seconds,
        max_action_attempts=settings.max_action_attempts,
        retry_backoff_minutes=settings.retry_backoff_minutes,
    )
    return WorkflowEngine(
        uow_factory or sql_unit_of_work,
        executor,
        due_batch_size=settings.due_batch_size,
        due_worker_concurrency=settings.due_worker_concurrency,
        due_lease_seconds=settings.due_lease_seconds,
        snapshot_scan_limit=settings.snapshot_scan_limit,
    )

"""Service interfaces (ports) for the application layer.

Protocols define contracts for application services (DIP).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from crmflow.application.dtos.notification import InAppNotification
    from crmflow.domain.entities.execution import ExecutionLogEntry


# Workflow engine interface (trigger source and scheduler entry points)
class IWorkflowEngine(Protocol):
    """Protocol for the automation engine."""

    async def process_trigger(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        trigger_type: Any,
        snapshot: Mapping[str, Any],
        *,
        previous_snapshot: Mapping[str, Any] | None = None,
        trigger_instance_id: str | None = None,
        triggered_at: datetime | None = None,
    ) -> list[ExecutionLogEntry]:
        """Evaluate and run workflows for one entity event; never raises."""

    async def process_due(self, now: datetime | None = None) -> list[ExecutionLogEntry]:
        """Fire matching Scheduled workflows and run due deferred actions."""


# Notification service interface (send_notification / send_email actions)
class INotificationService(Protocol):
    """Protocol for sending notifications to users or addresses."""

    async def send(
        self,
        to_emails: list[str],
        subject: str,
        body: str,
    ) -> None:
        """Send email to the given addresses. No-op or log if not configured."""

    async def notify_user(self, tenant_id: str, notification: InAppNotification) -> None:
        """Deliver an in-app notification to one user."""


# Template renderer (notification subject/body)
class ITemplateRenderer(Protocol):
    """Protocol for rendering notification templates against a snapshot."""

    def render(self, template_id: str, context: Mapping[str, Any]) -> tuple[str, str]:
        """Return (subject, body) for a template key."""

    def render_string(self, source: str, context: Mapping[str, Any]) -> str:
        """Render an inline template string such as 'Hi {{ name }}'."""

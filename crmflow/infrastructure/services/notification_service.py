"""Notification delivery: log-only sender used until a real channel is wired."""

from __future__ import annotations

import logging

from crmflow.application.dtos.notification import InAppNotification
from crmflow.shared.telemetry.logging import get_logger
from crmflow.shared.utils.datetime import utc_now

logger = get_logger(__name__)


class LogOnlyNotificationService:
    """INotificationService implementation that logs instead of delivering.

    Use when no SMTP or push channel is configured. Production can swap in an
    SMTP or queue-based implementation.
    """

    async def send(
        self,
        to_emails: list[str],
        subject: str,
        body: str,
    ) -> None:
        """Log the email; nothing is actually sent."""
        recipients = list(to_emails or [])
        subject_preview = (subject or "")[:80]
        if not recipients:
            logger.info(
                "Workflow email: no recipients, skipping send (subject=%r)",
                subject_preview,
            )
            return
        logger.info(
            "Workflow email: would send to %d recipients (subject=%r)",
            len(recipients),
            subject_preview,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Workflow email recipients: %s (at %s)",
                recipients,
                utc_now().isoformat(),
            )
        logger.debug("Workflow email body (first 500 chars): %s", (body or "")[:500])

    async def notify_user(self, tenant_id: str, notification: InAppNotification) -> None:
        """Log the in-app notification."""
        logger.info(
            "Workflow notification for user %s (tenant_id=%s, %s %s, channels=%s): %r",
            notification.user_id,
            tenant_id,
            notification.entity_type,
            notification.entity_id,
            ",".join(notification.channels),
            notification.title[:80],
        )

"""DTOs for notifications sent by send_notification actions."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InAppNotification:
    """Rendered in-app notification for one user."""

    user_id: str
    title: str
    message: str
    entity_type: str
    entity_id: str
    workflow_id: str | None = None
    channels: tuple[str, ...] = ("in_app",)
    data: dict[str, Any] = field(default_factory=dict)

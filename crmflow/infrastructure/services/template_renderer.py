"""Notification templates: subject and body for each template key (Jinja).

Snapshot fields are exposed at the top level of the context, so a template
can use ``{{ subject }}`` or ``{{ customer.tier }}`` directly; the whole
snapshot is also available as ``record``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import Environment, Template, TemplateError

# In-repo template definitions: key: (subject_template, body_template)
_DEFAULT_TEMPLATES: dict[str, tuple[str, str]] = {
    "record_assigned": (
        "{{ entity_type }} assigned to you",
        "{{ entity_type }} {{ record.get('name') or record.get('subject') or entity_id }} "
        "was assigned to you.",
    ),
    "ticket_escalated": (
        "Ticket {{ record.get('ticket_number', entity_id) }} escalated",
        "Ticket {{ record.get('subject', '') }} has priority "
        "{{ record.get('priority', 'N/A') }} and needs attention.",
    ),
    "follow_up_reminder": (
        "Follow up on {{ entity_type }} {{ record.get('name', entity_id) }}",
        "This is a reminder to follow up on {{ entity_type }} {{ entity_id }}.",
    ),
    "workflow_notification": (
        "Workflow: {{ workflow_name or 'Notification' }}",
        "{{ entity_type }} {{ entity_id }} matched an automation rule.",
    ),
}


class WorkflowTemplateRenderer:
    """Renders subject and body for notification actions from a template key."""

    def __init__(
        self,
        templates: dict[str, tuple[str, str]] | None = None,
    ) -> None:
        """Initialize with optional template dict; falls back to _DEFAULT_TEMPLATES."""
        self._templates = templates or _DEFAULT_TEMPLATES
        self._env = Environment(autoescape=False)
        self._compiled: dict[str, tuple[Template, Template]] = {}
        for key, (sub_str, body_str) in self._templates.items():
            self._compiled[key] = (
                self._env.from_string(sub_str),
                self._env.from_string(body_str),
            )

    def has_template(self, template_id: str) -> bool:
        return template_id in self._compiled

    def render(self, template_id: str, context: Mapping[str, Any]) -> tuple[str, str]:
        """Render subject and body for the template key. Raises KeyError if key unknown."""
        if template_id not in self._compiled:
            raise KeyError(f"Unknown notification template: {template_id}")
        subject_tpl, body_tpl = self._compiled[template_id]
        ctx = dict(context)
        return subject_tpl.render(**ctx), body_tpl.render(**ctx)

    def render_string(self, source: str, context: Mapping[str, Any]) -> str:
        """Render an inline template. Raises ValueError on template syntax errors."""
        if "{{" not in source and "{%" not in source:
            return source
        try:
            return self._env.from_string(source).render(**dict(context))
        except TemplateError as e:
            raise ValueError(f"Invalid template: {e}") from e

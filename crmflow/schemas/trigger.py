"""Request/response schemas for the trigger and scheduler endpoints."""

from collections import Counter
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from crmflow.domain.entities.execution import ExecutionLogEntry
from crmflow.domain.enums import ExecutionStatus, TriggerType
from crmflow.schemas.execution_log import ExecutionLogEntryResponse


class TriggerRequest(BaseModel):
    """One entity lifecycle event. tenant_id comes from the tenant header."""

    entity_type: str = Field(..., min_length=1, max_length=64)
    entity_id: str = Field(..., min_length=1, max_length=200)
    trigger_type: TriggerType
    snapshot: dict[str, Any]
    previous_snapshot: dict[str, Any] | None = None
    trigger_instance_id: str | None = Field(
        None,
        max_length=200,
        description="Supply the event id to make redelivery idempotent",
    )
    triggered_at: datetime | None = None

    @field_validator("trigger_type", mode="before")
    @classmethod
    def parse_trigger_type(cls, v: Any) -> TriggerType:
        return TriggerType.parse(v)


class ExecutionSummary(BaseModel):
    """Entries written by one engine call, with per-status counts."""

    executions: list[ExecutionLogEntryResponse]
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @classmethod
    def from_entries(cls, entries: Sequence[ExecutionLogEntry], **extra: Any):
        counts = Counter(e.status for e in entries)
        return cls(
            executions=[ExecutionLogEntryResponse.model_validate(e) for e in entries],
            succeeded=counts[ExecutionStatus.SUCCESS],
            failed=counts[ExecutionStatus.FAILED],
            skipped=counts[ExecutionStatus.SKIPPED],
            **extra,
        )


class TriggerResponse(ExecutionSummary):
    """Result of POST /triggers; deferred actions are not listed."""

    trigger_instance_id: str


class DueTickRequest(BaseModel):
    """Optional explicit tick time (defaults to the server clock)."""

    now: datetime | None = None


class DueTickResponse(ExecutionSummary):
    """Result of POST /scheduler/due-tick."""

    tick: datetime

"""Scheduler API: an external cron (or operator) drives due ticks here."""

from typing import Annotated

from fastapi import APIRouter, Depends

from crmflow.api.v1.dependencies import get_engine
from crmflow.application.interfaces.services import IWorkflowEngine
from crmflow.schemas.trigger import DueTickRequest, DueTickResponse
from crmflow.shared.utils.datetime import ensure_utc, utc_now

router = APIRouter()


@router.post("/due-tick", response_model=DueTickResponse)
async def due_tick(
    engine: Annotated[IWorkflowEngine, Depends(get_engine)],
    body: DueTickRequest | None = None,
) -> DueTickResponse:
    """Fire Scheduled workflows for this minute and run due deferred actions (all tenants)."""
    tick = ensure_utc(body.now if body and body.now else utc_now())
    entries = await engine.process_due(tick)
    return DueTickResponse.from_entries(entries, tick=tick)
